import logging
import warnings
from dataclasses import dataclass

import numpy as np
import numpy.polynomial.polynomial as npoly

from ..exceptions import DivideByZeroError, InsufficientDataError, InvalidArgumentError

"""
Helper functions for 1D spectral work. The centerpiece is normalize_continuum,
which fits a low-order polynomial to two side-bands flanking a feature and
normalizes (or subtracts) it over the full bracketed range. By default the
side-bands bracket the Na I D / He I 5876 complex.
"""

logger = logging.getLogger(__name__)

# Rest-frame side-bands, Angstrom
LOW_BAND_REST = (5810., 5865.)
HIGH_BAND_REST = (5905., 5960.)


@dataclass(frozen=True)
class NormalizedResult:
    """Output of normalize_continuum. All arrays are copies over the bracketed range.

    Attributes
    ----------
    wave : numpy.ndarray
        Wavelengths between the low edge of the lower band and the high edge of the upper band
    flux : numpy.ndarray
        Original flux over that range
    err : numpy.ndarray
        Original error over that range
    nflux : numpy.ndarray
        Normalized (or continuum-subtracted) flux
    nerr : numpy.ndarray
        Normalized error. Equal to err in subtract mode.
    indices : numpy.ndarray
        Indices of the range into the input arrays
    coeffs : numpy.ndarray
        Continuum polynomial coefficients, ascending powers
    continuum : numpy.ndarray
        Continuum polynomial evaluated over wave
    """
    wave: np.ndarray
    flux: np.ndarray
    err: np.ndarray
    nflux: np.ndarray
    nerr: np.ndarray
    indices: np.ndarray
    coeffs: np.ndarray
    continuum: np.ndarray


def continuum_bands(
        z: float, low_rest: tuple=LOW_BAND_REST, high_rest: tuple=HIGH_BAND_REST
) -> tuple[tuple[float, float], tuple[float, float]]:
    """Shifts rest-frame side-bands to the observed frame at redshift z"""
    low_band = ((1 + z) * low_rest[0], (1 + z) * low_rest[1])
    high_band = ((1 + z) * high_rest[0], (1 + z) * high_rest[1])
    return low_band, high_band


def band_mask(wave: np.ndarray, band) -> np.ndarray:
    """Boolean mask of wave within [band[0], band[1]], bounds inclusive"""
    return (wave >= band[0]) & (wave <= band[1])


def polyfit_weighted(x: np.ndarray, y: np.ndarray, weights: np.ndarray, order: int) -> np.ndarray:
    """
    Weighted least-squares polynomial fit.

    :param x: numpy.ndarray
        Abscissa
    :param y: numpy.ndarray
        Ordinate
    :param weights: numpy.ndarray
        Weights applied to the unsquared residuals, i.e., 1/sigma
    :param order: int
        Polynomial degree
    :return coeffs: numpy.ndarray
        Coefficients in ascending powers, length order + 1
    """
    if np.ptp(x) == 0:
        # Degenerate domain, Polynomial.fit cannot map it
        return npoly.polyfit(x, y, order, w=weights)
    coeffs = npoly.Polynomial.fit(x, y, order, w=weights).convert().coef
    # convert() trims trailing zero coefficients
    return np.pad(coeffs, (0, order + 1 - coeffs.size))


def _check_band(band, name: str) -> tuple[float, float]:
    band = np.asarray(band, dtype=float)
    if band.shape != (2,) or not np.all(np.isfinite(band)):
        raise InvalidArgumentError(f"{name} must be a pair of finite wavelengths, got {band}")
    if band[0] > band[1]:
        raise InvalidArgumentError(f"{name} lower bound exceeds its upper bound: {band}")
    return float(band[0]), float(band[1])


def normalize_continuum(
        wave, flux, err, z: float,
        fit_order: int=2, low_band=None, high_band=None, subtract: bool=False,
        solver=None
) -> NormalizedResult:
    """
    Fits a polynomial continuum to the two side-bands flanking a feature, then
    normalizes flux and error by it over the range from the low edge of the lower
    band to the high edge of the upper band, gap included.

    Parameters
    ----------
    wave : array-like
        Wavelength grid, observed frame
    flux : array-like
        Flux values
    err : array-like
        1-sigma errors. The fit is weighted by 1/err.
    z : float
        Redshift, used only to place the default bands
    fit_order : int, optional
        Degree of the continuum polynomial, by default 2
    low_band : tuple, optional
        Observed-frame (low, high) bounds of the blue side-band.
        Defaults to (1+z)*[5810, 5865]
    high_band : tuple, optional
        Observed-frame (low, high) bounds of the red side-band.
        Defaults to (1+z)*[5905, 5960]
    subtract : bool, optional
        If True, subtracts the continuum and leaves the error untouched, by default False
    solver : callable, optional
        solver(x, y, weights, order) -> ascending coefficients. Defaults to polyfit_weighted

    Raises
    ------
    InvalidArgumentError
        If the inputs are malformed
    InsufficientDataError
        If the side-bands hold fewer than fit_order + 1 samples
    DivideByZeroError
        If the continuum is exactly zero within the output range (division mode only)

    Returns
    -------
    NormalizedResult
    """
    wave = np.asarray(wave, dtype=float)
    flux = np.asarray(flux, dtype=float)
    err = np.asarray(err, dtype=float)
    if wave.ndim != 1 or not (wave.shape == flux.shape == err.shape):
        raise InvalidArgumentError(
            "wave, flux, and err must be 1D and of equal length, got shapes "
            "{0}, {1}, {2}".format(wave.shape, flux.shape, err.shape)
        )
    if isinstance(fit_order, bool) or int(fit_order) != fit_order or fit_order < 0:
        raise InvalidArgumentError(f"fit_order must be a non-negative integer, got {fit_order}")
    fit_order = int(fit_order)
    if solver is None:
        solver = polyfit_weighted

    default_low, default_high = continuum_bands(z)
    low_band = _check_band(default_low if low_band is None else low_band, "low_band")
    high_band = _check_band(default_high if high_band is None else high_band, "high_band")
    if low_band[1] >= high_band[0]:
        raise InvalidArgumentError(
            "low_band must lie entirely below high_band, got {0} and {1}".format(low_band, high_band)
        )

    if np.any(np.diff(wave) < 0):
        warnings.warn("Wavelength grid is not sorted. Output indices may not be contiguous.")

    fit_mask = band_mask(wave, low_band) | band_mask(wave, high_band)
    indices = np.flatnonzero(band_mask(wave, (low_band[0], high_band[1])))

    nfit = int(fit_mask.sum())
    if nfit < fit_order + 1:
        raise InsufficientDataError(nfit, fit_order)
    fit_err = err[fit_mask]
    if not np.all(np.isfinite(fit_err) & (fit_err > 0)):
        raise InvalidArgumentError("Errors within the continuum bands must be positive and finite")

    coeffs = np.asarray(solver(wave[fit_mask], flux[fit_mask], 1. / fit_err, fit_order), dtype=float)
    if coeffs.shape != (fit_order + 1,):
        raise InvalidArgumentError(
            "Solver returned {0} coefficients for order {1}".format(coeffs.size, fit_order)
        )
    logger.debug(
        "Continuum fit to {0} samples in {1} and {2}: coefficients {3}".format(
            nfit, low_band, high_band, coeffs
        )
    )

    out_wave = wave[indices]
    out_flux = flux[indices]
    out_err = err[indices]
    continuum = npoly.polyval(out_wave, coeffs)

    if subtract:
        nflux = out_flux - continuum
        nerr = out_err.copy()
    else:
        zeros = continuum == 0
        if np.any(zeros):
            raise DivideByZeroError(indices[zeros])
        nflux = out_flux / continuum
        nerr = out_err / continuum

    return NormalizedResult(
        wave=out_wave, flux=out_flux, err=out_err,
        nflux=nflux, nerr=nerr, indices=indices,
        coeffs=coeffs, continuum=continuum
    )
