import logging
from dataclasses import dataclass

import numpy as np
import scipy.ndimage as scind
from astropy.visualization import (AsinhStretch, LinearStretch, LogStretch, ManualInterval,
                                   PowerStretch, SinhStretch, SqrtStretch, SquaredStretch)

from ..exceptions import InvalidArgumentError, InvalidDimensionError

"""
This is a toolbox for cutting a wide-field image down to the footprint of a
narrower instrument, e.g., an HST drizzled frame cut to an IFU field of view.

The mapping between the two pixel grids is a rotation (the position angle of
the narrow field, degrees East of North) plus a translation fixed by a single
tie-point known in both grids. In whole-field mode the cutout is derotated so
that its pixel axes line up with those of the narrow field.

Pixel coordinates are zero-based (x, y) = (column, row) throughout.
Sub-image bounds are inclusive, [x0, x1, y0, y1].
"""

logger = logging.getLogger(__name__)

STRETCHES = {
    "asinh": AsinhStretch,
    "linear": LinearStretch,
    "log": LogStretch,
    "power": PowerStretch,
    "sinh": SinhStretch,
    "sqrt": SqrtStretch,
    "squared": SquaredStretch,
}


@dataclass(frozen=True)
class ExtractionResult:
    """Output of extract_subimage

    Attributes
    ----------
    image : numpy.ndarray
        Sub-image, odd in both dimensions
    corners : numpy.ndarray or None
        Shape (4, 2) field corners (x, y) in sub-image pixels, if requested
    bounds : numpy.ndarray
        Final [x0, x1, y0, y1]. Source-image pixels, or dummy-frame pixels in whole-field mode
    center : numpy.ndarray
        Field centre (x, y) in sub-image pixels
    """
    image: np.ndarray
    corners: np.ndarray | None
    bounds: np.ndarray
    center: np.ndarray


def _round(value):
    """Round half away from zero"""
    return np.sign(value) * np.floor(np.abs(value) + 0.5)


def rotation_matrix(position_angle: float) -> np.ndarray:
    """
    Rotation matrix for a field at position angle PA, degrees East of North.
    Takes offsets measured along the narrow field's axes to source-image axes.
    The sign arrangement is [[cos, sin], [-sin, cos]], i.e., a clockwise turn
    with x right and y up. Corner placement depends on it.
    """
    theta = np.deg2rad(position_angle)
    return np.array([
        [np.cos(theta), np.sin(theta)],
        [-np.sin(theta), np.cos(theta)]
    ])


def force_odd(npix: float) -> tuple[int, float]:
    """
    Rounds a decimal pixel count to the nearest integer and bumps it to odd if it is even,
    so that a unique centre pixel exists.

    Returns
    -------
    npix_odd : int
        Odd pixel count
    residual : float
        npix_odd - npix. Carried for bookkeeping. No sub-pixel shift is applied for it.
    """
    npix_odd = int(_round(npix))
    if npix_odd % 2 == 0:
        npix_odd += 1
    return npix_odd, npix_odd - npix


def field_center(
        target_dims, target_ref, source_ref,
        target_pixel_scale: float, source_pixel_scale: float, position_angle: float
) -> np.ndarray:
    """
    Decimal source-image pixel coordinates of the narrow field's centre.

    Parameters
    ----------
    target_dims : array-like
        (nx, ny) of the narrow field in its own pixels
    target_ref : array-like
        (x, y) tie-point in narrow-field pixels
    source_ref : array-like
        (x, y) of the same tie-point in source-image pixels
    target_pixel_scale : float
        arcsec/pixel of the narrow field
    source_pixel_scale : float
        arcsec/pixel of the source image
    position_angle : float
        PA of the narrow field, degrees

    Returns
    -------
    center : numpy.ndarray
        (x, y) in source-image pixels
    """
    target_center = (np.asarray(target_dims, dtype=float) - 1) / 2.
    offset = (target_center - np.asarray(target_ref, dtype=float)) * target_pixel_scale / source_pixel_scale
    return np.asarray(source_ref, dtype=float) + rotation_matrix(position_angle) @ offset


def field_corners(
        center, lower_left, target_dims,
        target_pixel_scale: float, source_pixel_scale: float, position_angle: float
) -> np.ndarray:
    """
    Corners of the narrow field in sub-image pixels, counter-clockwise from lower-left:
    (-x, -y), (+x, -y), (+x, +y), (-x, +y) relative to the centre.

    :param center: array-like
        (x, y) of field centre, in the same frame as lower_left
    :param lower_left: array-like
        (x0, y0) of the sub-image
    :return corners: numpy.ndarray
        Shape (4, 2) array of (x, y)
    """
    half = np.asarray(target_dims, dtype=float) / 2. * target_pixel_scale / source_pixel_scale
    offsets = np.array([
        [-half[0], -half[1]],
        [half[0], -half[1]],
        [half[0], half[1]],
        [-half[0], half[1]]
    ])
    rotated = offsets @ rotation_matrix(position_angle).T
    return rotated + np.asarray(center, dtype=float) - np.asarray(lower_left, dtype=float)


def rotate_about(image: np.ndarray, angle: float, center, order: int=3, cval: float=0.) -> np.ndarray:
    """
    Rotates an image about an arbitrary pixel with spline interpolation.
    The pivot pixel stays in place and the output keeps the input shape.

    :param image: numpy.ndarray
        2D image
    :param angle: float
        Degrees. Positive turns the image content clockwise (x right, y up)
    :param center: array-like
        (x, y) pivot
    :param order: int
        Spline order passed to scipy.ndimage, cubic by default
    :param cval: float
        Fill value for pixels rotated in from outside the image
    :return rotated: numpy.ndarray
    """
    theta = np.deg2rad(angle)
    # Output (row, col) -> input (row, col)
    matrix = np.array([
        [np.cos(theta), np.sin(theta)],
        [-np.sin(theta), np.cos(theta)]
    ])
    pivot = np.array([center[1], center[0]], dtype=float)
    offset = pivot - matrix @ pivot
    return scind.affine_transform(
        np.asarray(image, dtype=float), matrix, offset=offset,
        order=order, mode="constant", cval=cval
    )


def bytescale(
        image: np.ndarray, vmin: float, vmax: float,
        stretch: str="asinh", top: float=255, **stretch_kwargs
) -> np.ndarray:
    """
    Byte-scales an image for display. Values are clipped to [vmin, vmax], stretched,
    and mapped onto [0, top].

    Parameters
    ----------
    image : numpy.ndarray
        Image to scale
    vmin : float
        Value mapped to 0
    vmax : float
        Value mapped to top
    stretch : str, optional
        One of asinh, linear, log, power, sinh, sqrt, squared. By default asinh
    top : float, optional
        Maximum output value, by default 255
    **stretch_kwargs
        Passed through to the astropy.visualization stretch, e.g., a=0.05 for asinh

    Returns
    -------
    scaled : numpy.ndarray
        Float image within [0, top]
    """
    if vmin >= vmax:
        raise InvalidArgumentError(f"Scale limits must satisfy min < max, got [{vmin}, {vmax}]")
    if stretch.lower() not in STRETCHES:
        raise InvalidArgumentError(
            "Unknown stretch {0}. Choose from {1}".format(stretch, sorted(STRETCHES))
        )
    interval = ManualInterval(vmin=vmin, vmax=vmax)
    try:
        stretcher = STRETCHES[stretch.lower()](**stretch_kwargs)
    except TypeError as exc:
        raise InvalidArgumentError(
            "Bad arguments {0} for {1} stretch: {2}".format(stretch_kwargs, stretch, exc)
        ) from exc
    return np.asarray(stretcher(interval(np.asarray(image, dtype=float), clip=True)), dtype=float) * top


def _check_bounds(bounds, shape, label: str) -> None:
    """Raises InvalidDimensionError if inclusive [x0, x1, y0, y1] bounds leave an image of shape (ny, nx)"""
    x0, x1, y0, y1 = bounds
    if x0 < 0 or y0 < 0 or x1 > shape[1] - 1 or y1 > shape[0] - 1:
        raise InvalidDimensionError(
            "{0} bounds [{1}, {2}, {3}, {4}] fall outside image of shape {5}".format(
                label, x0, x1, y0, y1, shape
            )
        )


def _crop(image: np.ndarray, bounds) -> np.ndarray:
    x0, x1, y0, y1 = bounds
    return image[y0:y1 + 1, x0:x1 + 1]


def _as_pair(value, name: str) -> np.ndarray:
    """Broadcasts a scalar or length-2 value to an (x, y) float pair"""
    if value is None:
        raise InvalidArgumentError(f"{name} is required")
    if np.ndim(value) == 0:
        pair = np.full(2, float(value))
    else:
        pair = np.asarray(value, dtype=float)
    if pair.shape != (2,) or not np.all(np.isfinite(pair)):
        raise InvalidArgumentError(f"{name} must be a scalar or an (x, y) pair, got {value}")
    return pair


def extract_subimage(
        image: np.ndarray, subimage_size, target_dims, target_pixel_scale: float,
        position_angle: float, target_ref, source_ref, scale_limits,
        source_pixel_scale: float=0.05, whole_field: bool=False,
        scale_args: dict | None=None, skip_scaling: bool=False, return_corners: bool=False,
        rotator=None, scaler=None
) -> ExtractionResult:
    """
    Cuts the footprint of a narrow field out of a wide-field image.
    General flow is:
        1.) Locate the narrow field's centre in the source image via the tie-point and PA
        2.) In whole-field mode, cut an oversized square so rotation cannot clip the field
        3.) Cut the sub-image (odd in both dimensions, centred on the field centre pixel)
        4.) Byte-scale it
        5.) In whole-field mode, derotate by -PA about the field centre and crop to the field

    Parameters
    ----------
    image : numpy.ndarray
        2D source image, shape (ny, nx)
    subimage_size : float or array-like
        (x, y) size of the cutout in arcsec. Ignored, and may be None, in whole-field mode,
        where the cutout matches target_dims * target_pixel_scale
    target_dims : array-like
        (nx, ny) of the narrow field, in its own pixels
    target_pixel_scale : float
        arcsec/pixel of the narrow field
    position_angle : float
        PA of the narrow field, degrees East of North
    target_ref : array-like
        (x, y) tie-point in narrow-field pixels
    source_ref : array-like
        (x, y) of the same tie-point in source-image pixels
    scale_limits : array-like
        [min, max] display limits for byte-scaling. Unused if skip_scaling
    source_pixel_scale : float, optional
        arcsec/pixel of the source image, by default 0.05
    whole_field : bool, optional
        If True, derotates and crops to exactly the narrow field, by default False
    scale_args : dict, optional
        Keyword arguments for the scaler, e.g., {"stretch": "sqrt"}, by default None
    skip_scaling : bool, optional
        If True, intensities are left as-is, by default False
    return_corners : bool, optional
        If True, also computes the narrow field's corners in sub-image pixels, by default False
    rotator : callable, optional
        rotator(image, angle, center) -> image. Defaults to rotate_about
    scaler : callable, optional
        scaler(image, vmin, vmax, **scale_args) -> image. Defaults to bytescale

    Raises
    ------
    InvalidArgumentError
        If a required argument is missing or malformed
    InvalidDimensionError
        If the image is not 2D or the cutout leaves the image

    Returns
    -------
    ExtractionResult
    """
    image = np.asarray(image)
    if image.ndim != 2:
        raise InvalidDimensionError(f"Source image must be 2D, got shape {image.shape}")
    if position_angle is None:
        raise InvalidArgumentError("position_angle is required")
    target_dims = _as_pair(target_dims, "target_dims")
    target_ref = _as_pair(target_ref, "target_ref")
    source_ref = _as_pair(source_ref, "source_ref")
    if np.any(target_dims <= 0):
        raise InvalidArgumentError(f"target_dims must be positive, got {target_dims}")
    if target_pixel_scale is None or target_pixel_scale <= 0 or source_pixel_scale <= 0:
        raise InvalidArgumentError(
            "Pixel scales must be positive, got target {0}, source {1}".format(
                target_pixel_scale, source_pixel_scale
            )
        )
    if rotator is None:
        rotator = rotate_about
    if scaler is None:
        scaler = bytescale
    if scale_args is None:
        scale_args = {}
    if not skip_scaling:
        if scale_limits is None or np.shape(scale_limits) != (2,):
            raise InvalidArgumentError(f"scale_limits must be [min, max], got {scale_limits}")

    pixel_ratio = target_pixel_scale / source_pixel_scale
    center = field_center(
        target_dims, target_ref, source_ref,
        target_pixel_scale, source_pixel_scale, position_angle
    )
    center_pix = _round(center).astype(int)
    logger.debug(f"Field centre at source pixel {center}, centre pixel {center_pix}")

    if whole_field:
        dummy_npix, residual = force_odd(2 * target_dims.max() * target_pixel_scale / source_pixel_scale)
        logger.debug(f"Dummy cutout {dummy_npix} px square, unapplied rounding residual {residual:.3f} px")
        dummy_half = dummy_npix // 2
        dummy_bounds = np.array([
            center_pix[0] - dummy_half, center_pix[0] + dummy_half,
            center_pix[1] - dummy_half, center_pix[1] + dummy_half
        ])
        _check_bounds(dummy_bounds, image.shape, "Dummy sub-image")
        # From here on the field centre is the dummy's own centre pixel.
        # The sub-pixel offset between center and center_pix is dropped.
        local_center = np.array([dummy_half, dummy_half], dtype=float)
        center_pix = np.array([dummy_half, dummy_half])
        size_arcsec = target_dims * target_pixel_scale
        sliced_shape = (dummy_npix, dummy_npix)
    else:
        size_arcsec = _as_pair(subimage_size, "subimage_size")
        if np.any(size_arcsec <= 0):
            raise InvalidArgumentError(f"subimage_size must be positive, got {size_arcsec}")
        local_center = center
        sliced_shape = image.shape

    npix_x, residual_x = force_odd(size_arcsec[0] / source_pixel_scale)
    npix_y, residual_y = force_odd(size_arcsec[1] / source_pixel_scale)
    logger.debug(
        f"Sub-image {npix_x}x{npix_y} px, unapplied rounding residuals ({residual_x:.3f}, {residual_y:.3f}) px"
    )
    half_x, half_y = npix_x // 2, npix_y // 2
    bounds = np.array([
        center_pix[0] - half_x, center_pix[0] + half_x,
        center_pix[1] - half_y, center_pix[1] + half_y
    ])
    _check_bounds(bounds, sliced_shape, "Sub-image")

    subimage = _crop(image, dummy_bounds if whole_field else bounds).astype(float)
    if not skip_scaling:
        subimage = scaler(subimage, scale_limits[0], scale_limits[1], **scale_args)

    if whole_field:
        subimage = _crop(rotator(subimage, -position_angle, center_pix), bounds)

    corners = None
    if return_corners:
        corners = field_corners(
            local_center, bounds[[0, 2]], target_dims,
            target_pixel_scale, source_pixel_scale, position_angle
        )

    logger.info(
        "Extracted {0}x{1} sub-image{2} at PA {3} deg, pixel ratio {4:.3f}".format(
            subimage.shape[1], subimage.shape[0], " (whole field)" if whole_field else "",
            position_angle, pixel_ratio
        )
    )
    return ExtractionResult(
        image=subimage, corners=corners, bounds=bounds,
        center=local_center - bounds[[0, 2]]
    )
