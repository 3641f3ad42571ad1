from __future__ import annotations

import cv2
import numpy as np
import pytest

from pinholebearing.core.camera import PinholeCamera, create_camera
from pinholebearing.core.distortion import CameraConfigError, DistortionModel
from pinholebearing.options import CameraOptions

INTRINSICS = (500.0, 500.0, 320.0, 240.0)
RADTAN = (-0.1, 0.01, 0.0, 0.0)
EQUIDISTANT = (0.02, -0.005, 0.001, -0.0002)


def _options(model: str = "radtan", coeffs=RADTAN, intrinsics=INTRINSICS, size=(640, 480)) -> CameraOptions:
    return CameraOptions(
        distortion_model=model,
        distortion_coefficients=tuple(coeffs),
        intrinsics=tuple(intrinsics),
        resolution=size,
    )


@pytest.fixture(params=["radtan", "equidistant"])
def camera(request) -> PinholeCamera:
    coeffs = RADTAN if request.param == "radtan" else EQUIDISTANT
    cam = create_camera(_options(request.param, coeffs))
    assert cam is not None
    return cam


def _pixels(n: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return np.stack([rng.uniform(0, 639, size=n), rng.uniform(0, 479, size=n)], axis=-1)


def test_create_camera_known_models():
    cam = create_camera(_options("radtan"))
    assert isinstance(cam, PinholeCamera)
    assert cam.model is DistortionModel.RADTAN
    assert np.array_equal(cam.intrinsics, INTRINSICS)
    assert np.array_equal(cam.distortion_coefficients, RADTAN)
    assert cam.image_size == (640, 480)

    fisheye = create_camera(_options("equidistant", EQUIDISTANT))
    assert fisheye is not None
    assert fisheye.model is DistortionModel.EQUIDISTANT


def test_create_camera_unsupported_model_returns_none():
    assert create_camera(_options("omnidirectional")) is None


def test_create_camera_intrinsics_override():
    cam = create_camera(_options(), intrinsics=(400.0, 410.0, 300.0, 200.0))
    assert cam is not None
    assert np.array_equal(cam.intrinsics, (400.0, 410.0, 300.0, 200.0))


@pytest.mark.parametrize(
    "opts",
    [
        _options("radtan", coeffs=(0.1, 0.0)),
        _options("equidistant", coeffs=RADTAN + (0.0,)),
        _options(intrinsics=(0.0, 500.0, 320.0, 240.0)),
        _options(size=(0, 480)),
    ],
)
def test_create_camera_invalid_configuration_fails_fast(opts):
    with pytest.raises(CameraConfigError):
        create_camera(opts)


def test_concrete_radtan_scenario():
    cam = create_camera(_options())
    assert cam is not None

    assert np.allclose(cam.normalize(np.array([420.0, 240.0])), [0.2, 0.0], atol=1e-15)

    res = cam.undistort_points(np.array([420.0, 240.0]), normalize=False)
    assert res.all_converged
    assert res.iterations <= 20
    u, v = res.points
    # barrel distortion (k1 < 0) pulls points inwards, undistortion pushes them out
    assert u > 420.0
    assert abs(v - 240.0) < 1e-9
    redistorted = cam.distort(res.points)
    assert np.max(np.abs(redistorted - [420.0, 240.0])) < 500.0 * 1e-6

    xy = cam.undistort(np.array([420.0, 240.0]), normalize=True)
    assert np.allclose(cam.denormalize(xy), res.points, atol=1e-9)


def test_undistort_distort_roundtrip(camera):
    uv = _pixels(500)
    res = camera.undistort_points(uv)
    assert res.all_converged
    assert np.max(np.abs(camera.distort(res.points) - uv)) < 1e-3

    xy = camera.undistort(uv, normalize=True)
    assert np.max(np.abs(camera.distort(xy, normalized=True) - uv)) < 1e-3


def test_batch_matches_single_points(camera):
    uv = _pixels(50, seed=3)
    for normalize in (False, True):
        batch = camera.undistort(uv, normalize=normalize)
        singles = np.stack([camera.undistort(p, normalize=normalize) for p in uv])
        np.testing.assert_allclose(batch, singles, rtol=0.0, atol=1e-12)


def test_point_layouts_are_equivalent(camera):
    uv = _pixels(50, seed=4)
    for normalize in (False, True):
        native = camera.undistort(uv, normalize=normalize)
        opencv = camera.undistort(uv.reshape(-1, 1, 2), normalize=normalize)
        as_list = camera.undistort([tuple(p) for p in uv], normalize=normalize)
        assert opencv.shape == (50, 1, 2)
        assert np.array_equal(opencv.reshape(-1, 2), native)
        assert np.array_equal(as_list, native)


def test_undistort_matches_opencv_radtan():
    cam = create_camera(_options(coeffs=(-0.2, 0.03, 5e-4, -3e-4, 0.001)))
    assert cam is not None
    rng = np.random.default_rng(5)
    xy = rng.uniform(-0.5, 0.5, size=(200, 2))
    obj = np.concatenate([xy, np.ones((200, 1))], axis=1)
    uv, _ = cv2.projectPoints(obj, np.zeros(3), np.zeros(3), cam.K(), cam.distortion_coefficients)
    out = cam.undistort(uv, normalize=True)
    assert out.shape == (200, 1, 2)
    assert np.max(np.abs(out.reshape(-1, 2) - xy)) < 1e-5


def test_undistort_matches_opencv_fisheye():
    cam = create_camera(_options("equidistant", EQUIDISTANT))
    assert cam is not None
    rng = np.random.default_rng(6)
    xy = rng.uniform(-0.8, 0.8, size=(200, 2))
    obj = np.concatenate([xy, np.ones((200, 1))], axis=1).reshape(1, -1, 3)
    D = cam.distortion_coefficients.reshape(4, 1)
    uv, _ = cv2.fisheye.projectPoints(obj, np.zeros((3, 1)), np.zeros((3, 1)), cam.K(), D)
    out = cam.undistort(uv.reshape(-1, 2), normalize=True)
    assert np.max(np.abs(out - xy)) < 1e-5


def test_non_converged_points_are_flagged():
    cam = create_camera(_options(coeffs=(-0.3, 0.0, 0.0, 0.0)))
    assert cam is not None
    uv = np.array([[320.0, 240.0], [600.0, 450.0]])
    res = cam.undistort_points(uv, max_iters=1)
    assert res.converged.tolist() == [True, False]
    assert np.all(np.isfinite(res.points))


def test_out_of_frame_pixels_stay_finite():
    cam = create_camera(_options(coeffs=(-0.3, 0.0, 0.0, 0.0)))
    assert cam is not None
    uv = np.array([[2000.0, 1500.0], [1200.0, 240.0], [900.0, 700.0], [-400.0, -300.0]])
    res = cam.undistort_points(uv)
    assert not np.any(res.converged)
    assert np.all(np.isfinite(res.points))
    assert np.all(np.isfinite(cam.bearings(uv)))


def test_bearings(camera):
    uv = _pixels(20, seed=7)
    d = camera.bearings(uv)
    xy = camera.undistort(uv, normalize=True)
    assert d.shape == (20, 3)
    assert np.max(np.abs(np.linalg.norm(d, axis=-1) - 1.0)) < 1e-12
    assert np.max(np.abs(d[:, :2] / d[:, 2:] - xy)) < 1e-12
    assert camera.bearings(uv[0]).shape == (3,)


def test_set_intrinsics_changes_normalization_and_drops_maps(camera):
    maps = camera.undistort_maps()
    assert camera.undistort_maps() is maps

    camera.set_intrinsics([250.0, 250.0, 320.0, 240.0])
    assert np.array_equal(camera.intrinsics, [250.0, 250.0, 320.0, 240.0])
    assert np.allclose(camera.normalize([420.0, 240.0]), [0.4, 0.0])
    assert camera.undistort_maps() is not maps


def test_set_intrinsics_validates(camera):
    with pytest.raises(CameraConfigError):
        camera.set_intrinsics([500.0, 500.0, 320.0])
    with pytest.raises(CameraConfigError):
        camera.set_intrinsics([500.0, -1.0, 320.0, 240.0])
    assert np.array_equal(camera.intrinsics, INTRINSICS)


def test_accessors_return_copies(camera):
    k = camera.intrinsics
    k[0] = 1.0
    assert camera.intrinsics[0] == 500.0


def test_undistort_maps_match_opencv_radtan():
    cam = create_camera(_options(coeffs=(-0.2, 0.03, 5e-4, -3e-4, 0.001)))
    assert cam is not None
    map_x, map_y = cam.undistort_maps()
    ref_x, ref_y = cv2.initUndistortRectifyMap(
        cam.K(), cam.distortion_coefficients, None, cam.K(), cam.image_size, cv2.CV_32FC1
    )
    assert map_x.shape == (480, 640)
    assert np.max(np.abs(map_x - ref_x)) < 1e-2
    assert np.max(np.abs(map_y - ref_y)) < 1e-2


def test_undistort_maps_match_opencv_fisheye():
    cam = create_camera(_options("equidistant", EQUIDISTANT))
    assert cam is not None
    map_x, map_y = cam.undistort_maps()
    ref_x, ref_y = cv2.fisheye.initUndistortRectifyMap(
        cam.K(), cam.distortion_coefficients.reshape(4, 1), np.eye(3), cam.K(), cam.image_size, cv2.CV_32FC1
    )
    assert np.max(np.abs(map_x - ref_x)) < 1e-2
    assert np.max(np.abs(map_y - ref_y)) < 1e-2


def test_undistort_image_without_distortion_is_identity():
    cam = create_camera(_options(coeffs=(0.0, 0.0, 0.0, 0.0)))
    assert cam is not None
    rng = np.random.default_rng(8)
    img = rng.integers(0, 256, size=(480, 640, 3), dtype=np.uint8)
    assert np.array_equal(cam.undistort_image(img), img)


def test_undistort_image_moves_features_like_points(camera):
    target = np.array([520.0, 400.0])  # undistorted pixel
    src = camera.distort(target)
    yy, xx = np.mgrid[0:480, 0:640].astype(np.float64)
    blob = 255.0 * np.exp(-((xx - src[0]) ** 2 + (yy - src[1]) ** 2) / (2.0 * 2.0**2))
    img = blob.astype(np.float32)

    out = camera.undistort_image(img)
    assert out.shape == img.shape
    assert out.dtype == np.float32
    r, c = np.unravel_index(int(np.argmax(out)), out.shape)
    assert abs(c - target[0]) <= 1.0
    assert abs(r - target[1]) <= 1.0


def test_undistort_image_into_caller_buffer(camera):
    img = np.full((480, 640), 200, dtype=np.uint8)
    out = np.zeros_like(img)
    ret = camera.undistort_image(img, out=out)
    assert ret is out
    assert np.array_equal(out, camera.undistort_image(img))
    assert out[240, 320] == 200


def test_undistort_image_rejects_wrong_size_and_aliasing(camera):
    with pytest.raises(ValueError):
        camera.undistort_image(np.zeros((10, 10), dtype=np.uint8))
    img = np.zeros((480, 640), dtype=np.uint8)
    with pytest.raises(ValueError):
        camera.undistort_image(img, out=img)
