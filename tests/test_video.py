import imageio.v3 as iio
import numpy as np
import pytest

from breathwatch.video import VideoSource, luma


@pytest.fixture
def rgb_frame():
    rng = np.random.default_rng(7)
    return rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8)


@pytest.fixture
def video_path(tmp_path, rgb_frame):
    path = tmp_path / "test_video.png"
    iio.imwrite(path, rgb_frame)
    return str(path)


def test_construct_from_file_success(video_path):
    with VideoSource(-1, video_path, 30, 640, 480) as source:
        width, height = source.frame_size()
        assert width > 0
        assert height > 0


def test_construct_from_invalid_file_throws(tmp_path):
    with pytest.raises(RuntimeError):
        VideoSource(-1, str(tmp_path / "nonexistent.mp4"), 30, 640, 480)


def test_construct_from_non_video_file_throws(tmp_path):
    path = tmp_path / "invalid_file.mp4"
    path.write_text("not a video")
    with pytest.raises(RuntimeError):
        VideoSource(-1, str(path), 30, 640, 480)


def test_read_single_frame(video_path):
    with VideoSource(-1, video_path, 30, 640, 480) as source:
        frame = source.read()
        assert frame is not None
        assert frame.size > 0
        assert frame.dtype == np.uint8
        assert frame.ndim == 2


def test_frame_size_matches_frame(video_path):
    with VideoSource(-1, video_path, 30, 640, 480) as source:
        frame = source.read()
        width, height = source.frame_size()
        assert frame.shape[1] == width
        assert frame.shape[0] == height
        assert (width, height) == (64, 48)


def test_read_returns_luma_then_none(video_path, rgb_frame):
    with VideoSource(-1, video_path, 30, 640, 480) as source:
        frame = source.read()
        np.testing.assert_array_equal(frame, luma(rgb_frame))
        assert source.read() is None
        assert source.read() is None


def test_file_source_properties(video_path):
    with VideoSource(-1, video_path, 30, 640, 480) as source:
        assert source.is_file is True
        assert source.is_camera is False
        assert source.file_name == video_path


def test_read_after_close_raises(video_path):
    source = VideoSource(-1, video_path, 30, 640, 480)
    source.close()
    with pytest.raises(ValueError):
        source.read()


def test_luma_of_black_and_white():
    image = np.zeros((2, 2, 3), dtype=np.uint8)
    image[1] = 255
    result = luma(image)
    assert result.dtype == np.uint8
    np.testing.assert_array_equal(result, [[0, 0], [255, 255]])


def test_luma_of_gray_is_gray():
    image = np.full((3, 4, 3), 100, dtype=np.uint8)
    np.testing.assert_array_equal(luma(image), np.full((3, 4), 100, dtype=np.uint8))


def test_luma_weights_green_most():
    red = luma(np.array([[[255, 0, 0]]], dtype=np.uint8))[0, 0]
    green = luma(np.array([[[0, 255, 0]]], dtype=np.uint8))[0, 0]
    blue = luma(np.array([[[0, 0, 255]]], dtype=np.uint8))[0, 0]
    assert green > red > blue
    assert red == 76


def test_luma_ignores_alpha():
    rgba = np.zeros((2, 2, 4), dtype=np.uint8)
    rgba[..., :3] = 200
    rgba[..., 3] = 17
    np.testing.assert_array_equal(luma(rgba), np.full((2, 2), 200, dtype=np.uint8))


def test_luma_passes_single_channel_through():
    gray = np.arange(6, dtype=np.uint8).reshape(2, 3)
    np.testing.assert_array_equal(luma(gray), gray)


def test_luma_rejects_bad_shape():
    with pytest.raises(ValueError):
        luma(np.zeros((2, 2, 2), dtype=np.uint8))