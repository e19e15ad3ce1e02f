import numpy as np
import pytest

from ifutools.exceptions import InvalidArgumentError, InvalidDimensionError
from ifutools.tools.alignment_tools import (bytescale, extract_subimage, field_center, field_corners,
                                            force_odd, rotate_about, rotation_matrix)

SOURCE_SCALE = 0.05
TARGET_SCALE = 0.2
TARGET_DIMS = (11, 7)


@pytest.fixture
def ramp() -> np.ndarray:
    return np.arange(201 * 201, dtype=float).reshape(201, 201)


def _extract(image, **kwargs):
    """Field centred on source pixel (100, 100) unless overridden"""
    options = dict(
        subimage_size=1.0, target_dims=TARGET_DIMS, target_pixel_scale=TARGET_SCALE,
        position_angle=0., target_ref=(5, 3), source_ref=(100, 100),
        scale_limits=None, skip_scaling=True
    )
    options.update(kwargs)
    return extract_subimage(image, **options)


def test_rotation_matrix_sign_convention():
    assert np.allclose(rotation_matrix(0), np.eye(2))
    assert np.allclose(rotation_matrix(90), [[0, 1], [-1, 0]])
    rot = rotation_matrix(37.)
    assert np.allclose(rot @ rot.T, np.eye(2))
    assert np.linalg.det(rot) == pytest.approx(1.)


@pytest.mark.parametrize("npix, expected, residual", [
    (10.2, 11, 0.8),
    (11.4, 11, -0.4),
    (10.5, 11, 0.5),
    (12.6, 13, 0.4),
])
def test_force_odd(npix, expected, residual):
    npix_odd, res = force_odd(npix)
    assert npix_odd == expected
    assert res == pytest.approx(residual)


def test_field_center_translation_and_rotation():
    # Tie-point at the field centre maps straight across
    center = field_center(TARGET_DIMS, (5, 3), (40., 60.), TARGET_SCALE, SOURCE_SCALE, 23.)
    assert np.allclose(center, (40., 60.))
    # Tie-point 10 target pixels left of centre, 4 source pixels per target pixel
    center = field_center((21, 21), (0, 10), (100., 100.), TARGET_SCALE, SOURCE_SCALE, 0.)
    assert np.allclose(center, (140., 100.))
    center = field_center((21, 21), (0, 10), (100., 100.), TARGET_SCALE, SOURCE_SCALE, 90.)
    assert np.allclose(center, (100., 60.))


def test_rotate_about_pivot_is_fixed():
    image = np.zeros((21, 21))
    image[10, 12] = 1.
    rotated = rotate_about(image, 90., (10, 10), order=1)
    # Clockwise quarter turn takes (x=12, y=10) to (x=10, y=8)
    assert rotated[8, 10] == pytest.approx(1., abs=1e-6)
    assert rotated.sum() == pytest.approx(1., abs=1e-6)
    assert np.allclose(rotate_about(image, 0., (3, 7)), image)


def test_rotate_about_undoes_corner_rotation():
    image = np.zeros((41, 41))
    center = np.array([20, 20])
    offset = np.array([3, 1])
    x, y = center + np.rint(rotation_matrix(90.) @ offset).astype(int)
    image[y, x] = 1.
    derotated = rotate_about(image, -90., center, order=1)
    x, y = center + offset
    assert derotated[y, x] == pytest.approx(1., abs=1e-6)


def test_bytescale_linear_and_asinh():
    image = np.array([[-5., 0., 5., 10., 20.]])
    linear = bytescale(image, 0., 10., stretch="linear")
    assert np.allclose(linear, [[0., 0., 127.5, 255., 255.]])
    asinh = bytescale(image, 0., 10., a=0.1)
    assert asinh[0, 1] == pytest.approx(0.)
    assert asinh[0, 3] == pytest.approx(255.)
    # asinh lifts the faint end
    assert asinh[0, 2] > 127.5
    assert np.all(np.diff(asinh[0]) >= 0)


def test_bytescale_rejects_bad_limits_and_stretch():
    with pytest.raises(InvalidArgumentError, match="min < max"):
        bytescale(np.ones((3, 3)), 5., 5.)
    with pytest.raises(InvalidArgumentError, match="Unknown stretch"):
        bytescale(np.ones((3, 3)), 0., 1., stretch="histeq")


def test_bytescale_power_stretch_needs_exponent():
    with pytest.raises(InvalidArgumentError, match="power stretch"):
        bytescale(np.ones((3, 3)), 0., 2., stretch="power")
    scaled = bytescale(np.array([[0., 1., 2.]]), 0., 2., stretch="power", a=2.)
    assert np.allclose(scaled, [[0., 63.75, 255.]])


def test_plain_cutout(ramp):
    result = _extract(ramp)
    # 1 arcsec is 20 pixels, bumped to 21
    assert result.image.shape == (21, 21)
    assert np.array_equal(result.bounds, [90, 110, 90, 110])
    assert np.array_equal(result.image, ramp[90:111, 90:111])
    assert np.allclose(result.center, (10, 10))
    assert result.corners is None


def test_rectangular_cutout(ramp):
    result = _extract(ramp, subimage_size=(1.0, 0.6))
    assert result.image.shape == (13, 21)


def test_cutouts_are_always_odd(ramp):
    rng = np.random.default_rng(11)
    for size in np.arange(0.3, 2.0, 0.07):
        source_ref = rng.uniform(30., 170., 2)
        result = _extract(ramp, subimage_size=(size, size * 0.8), source_ref=source_ref)
        assert result.image.shape[0] % 2 == 1
        assert result.image.shape[1] % 2 == 1


def test_whole_field_cutouts_are_always_odd(ramp):
    for dims in [(4, 4), (5, 8), (10, 3), (7, 7)]:
        for pa in [0., 15., 90., 212.]:
            result = _extract(ramp, subimage_size=None, target_dims=dims, target_ref=(2, 2),
                              position_angle=pa, whole_field=True)
            assert result.image.shape[0] % 2 == 1
            assert result.image.shape[1] % 2 == 1


def test_whole_field_at_zero_pa_matches_plain_cutout(ramp):
    plain = _extract(ramp, subimage_size=np.array(TARGET_DIMS) * TARGET_SCALE)
    whole = _extract(ramp, subimage_size=123., whole_field=True)
    assert whole.image.shape == plain.image.shape == (29, 45)
    assert np.allclose(whole.image, plain.image)
    assert np.allclose(whole.center, plain.center)


def test_whole_field_ignores_requested_size(ramp):
    a = _extract(ramp, subimage_size=None, whole_field=True, position_angle=30.)
    b = _extract(ramp, subimage_size=5.0, whole_field=True, position_angle=30.)
    assert np.array_equal(a.image, b.image)


def test_whole_field_rotates_about_field_center(ramp):
    calls = []

    def rotator(image, angle, center):
        calls.append((image.shape, angle, tuple(center)))
        return image

    result = _extract(ramp, whole_field=True, position_angle=30., rotator=rotator)
    # Dummy is 2 * 11 * 0.2 arcsec = 88 px, bumped to 89
    assert calls == [((89, 89), -30., (44, 44))]
    assert np.array_equal(result.bounds, [22, 66, 30, 58])
    assert result.image.shape == (29, 45)


def test_whole_field_aligns_field_axes():
    image = np.zeros((201, 201))
    # A point 8 target-frame pixels along x and 4 along y from the centre, seen at PA 90
    x, y = np.array([100, 100]) + np.rint(rotation_matrix(90.) @ (8, 4)).astype(int)
    image[y, x] = 1.
    result = _extract(image, whole_field=True, position_angle=90.)
    assert np.allclose(result.center, (22, 14))
    assert result.image[14 + 4, 22 + 8] == pytest.approx(1., abs=1e-6)


def test_scaling_applied_before_crop(ramp):
    result = _extract(ramp, skip_scaling=False, scale_limits=[0., ramp.max()],
                      scale_args={"stretch": "linear"})
    assert result.image[0, 0] == pytest.approx((90 * 201 + 90) / ramp.max() * 255)
    default = _extract(ramp, skip_scaling=False, scale_limits=[0., ramp.max()])
    assert default.image.min() >= 0. and default.image.max() <= 255.
    assert np.all(np.diff(default.image, axis=1) > 0)


def test_injected_scaler_receives_limits(ramp):
    calls = []

    def scaler(image, vmin, vmax, **kwargs):
        calls.append((vmin, vmax, kwargs))
        return image * 0.

    result = _extract(ramp, skip_scaling=False, scale_limits=(1., 2.), scale_args={"a": 0.3})
    assert result.image.max() <= 255.
    result = _extract(ramp, skip_scaling=False, scale_limits=(1., 2.), scale_args={"a": 0.3}, scaler=scaler)
    assert calls == [(1., 2., {"a": 0.3})]
    assert np.all(result.image == 0.)


def test_corners_axis_aligned(ramp):
    result = _extract(ramp, subimage_size=np.array(TARGET_DIMS) * TARGET_SCALE, return_corners=True)
    assert np.allclose(result.corners, [[0, 0], [44, 0], [44, 28], [0, 28]])


@pytest.mark.parametrize("pa", [0., 37., 90., 145., 300.])
@pytest.mark.parametrize("whole_field", [False, True])
def test_corners_form_simple_quadrilateral(ramp, pa, whole_field):
    result = _extract(ramp, subimage_size=2.5, position_angle=pa, whole_field=whole_field,
                      target_ref=(1.5, 2.25), return_corners=True)
    corners = result.corners
    assert corners.shape == (4, 2)
    assert np.allclose(corners.mean(axis=0), result.center)
    edges = np.roll(corners, -1, axis=0) - corners
    turns = edges[:, 0] * np.roll(edges, -1, axis=0)[:, 1] - edges[:, 1] * np.roll(edges, -1, axis=0)[:, 0]
    # Counter-clockwise and convex, hence simple
    assert np.all(turns > 0)


def test_field_corners_at_quarter_turn():
    corners = field_corners((0, 0), (0, 0), (2, 2), 1., 1., 90.)
    assert np.allclose(corners, [[-1, 1], [-1, -1], [1, -1], [1, 1]])


def test_out_of_bounds_raises(ramp):
    with pytest.raises(InvalidDimensionError, match="outside image"):
        _extract(ramp, source_ref=(5, 100))
    with pytest.raises(InvalidDimensionError, match="Dummy"):
        _extract(ramp, source_ref=(190, 100), whole_field=True)


def test_non_2d_image_raises():
    with pytest.raises(InvalidDimensionError):
        _extract(np.zeros((3, 50, 50)))


@pytest.mark.parametrize("kwargs", [
    {"target_dims": None},
    {"position_angle": None},
    {"target_ref": None},
    {"source_ref": None},
    {"source_ref": (1, 2, 3)},
    {"subimage_size": None},
    {"subimage_size": -1.},
    {"target_pixel_scale": 0.},
    {"skip_scaling": False, "scale_limits": None},
    {"skip_scaling": False, "scale_limits": [0., 1., 2.]},
])
def test_missing_or_malformed_arguments_raise(ramp, kwargs):
    with pytest.raises(InvalidArgumentError):
        _extract(ramp, **kwargs)


def test_whole_field_needs_no_size(ramp):
    result = _extract(ramp, subimage_size=None, whole_field=True)
    assert result.image.shape == (29, 45)
