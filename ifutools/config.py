import configparser
import logging
import logging.config
import os
from dataclasses import asdict, dataclass

from .exceptions import InvalidArgumentError

"""
Run configuration for the IFUtools routines. Every option is spelled out with
its default in a dataclass; the same options can be read from the [NORMALIZE]
and [SUBIMAGE] sections of an .ini file (see sampleConfig.ini). Logging
handlers can live in the same file and are loaded with configure_logging.
"""


def _read_config(config_file: str) -> configparser.ConfigParser:
    if not os.path.isfile(config_file):
        raise InvalidArgumentError(f"Config file does not exist: {config_file}")
    config = configparser.ConfigParser()
    config.read(config_file)
    return config


def _parse_bool(value) -> bool:
    return True if str(value).lower() == "true" else False


def _parse_floats(value: str) -> tuple | None:
    """Comma-separated numbers to a tuple of floats. Empty or none maps to None"""
    if value.strip() == "" or value.strip().lower() == "none":
        return None
    try:
        return tuple(float(i) for i in value.split(","))
    except ValueError:
        raise InvalidArgumentError(f"Could not parse number list: {value}")


@dataclass
class NormalizeConfig:
    """Options for spectraTools.normalize_continuum"""
    fit_order: int = 2
    low_band: tuple | None = None
    high_band: tuple | None = None
    subtract: bool = False

    @classmethod
    def from_config_file(cls, config_file: str, section: str = "NORMALIZE") -> "NormalizeConfig":
        """Reads options from an .ini file. Keys are case-insensitive; missing keys keep defaults"""
        config = _read_config(config_file)
        cfg = cls()
        if section not in config.sections():
            return cfg
        options = config[section]
        cfg.fit_order = int(options["fitOrder"]) if "fitorder" in options.keys() else cfg.fit_order
        cfg.low_band = _parse_floats(options["lowBand"]) if "lowband" in options.keys() else cfg.low_band
        cfg.high_band = _parse_floats(options["highBand"]) if "highband" in options.keys() else cfg.high_band
        cfg.subtract = options["subtract"] if "subtract" in options.keys() else cfg.subtract
        cfg.subtract = _parse_bool(cfg.subtract)
        return cfg

    def to_kwargs(self) -> dict:
        return asdict(self)


@dataclass
class ExtractConfig:
    """Options for alignment_tools.extract_subimage"""
    source_pixel_scale: float = 0.05
    whole_field: bool = False
    scale_args: dict | None = None
    skip_scaling: bool = False
    return_corners: bool = False

    @classmethod
    def from_config_file(cls, config_file: str, section: str = "SUBIMAGE") -> "ExtractConfig":
        """
        Reads options from an .ini file. Keys are case-insensitive; missing keys keep defaults.
        Stretch options go in stretch (name) and stretchA (the stretch parameter), e.g.,
        stretch = asinh
        stretchA = 0.05
        """
        config = _read_config(config_file)
        cfg = cls()
        if section not in config.sections():
            return cfg
        options = config[section]
        cfg.source_pixel_scale = float(options["sourcePixelScale"]) if "sourcepixelscale" \
            in options.keys() else cfg.source_pixel_scale
        cfg.whole_field = options["wholeField"] if "wholefield" in options.keys() else cfg.whole_field
        cfg.whole_field = _parse_bool(cfg.whole_field)
        cfg.skip_scaling = options["skipScaling"] if "skipscaling" in options.keys() else cfg.skip_scaling
        cfg.skip_scaling = _parse_bool(cfg.skip_scaling)
        cfg.return_corners = options["returnCorners"] if "returncorners" in options.keys() \
            else cfg.return_corners
        cfg.return_corners = _parse_bool(cfg.return_corners)

        scale_args = {}
        if "stretch" in options.keys() and options["stretch"].strip().lower() not in ("", "none"):
            scale_args["stretch"] = options["stretch"].strip().lower()
        if "stretcha" in options.keys() and options["stretchA"].strip().lower() not in ("", "none"):
            scale_args["a"] = float(options["stretchA"])
        cfg.scale_args = scale_args if scale_args else cfg.scale_args
        return cfg

    def to_kwargs(self) -> dict:
        kwargs = asdict(self)
        if kwargs["scale_args"] is not None:
            kwargs["scale_args"] = dict(kwargs["scale_args"])
        return kwargs


def configure_logging(config_file: str, logfile: str) -> logging.Logger:
    """
    Loads logging handlers from the [loggers]/[handlers]/[formatters] sections of the
    config file. Handlers may refer to %(logfilename)s, which is filled in with logfile.

    :param config_file: str
        Path to the .ini file
    :param logfile: str
        Path to the log file
    :return logger: logging.Logger
        The package logger
    """
    if not os.path.isfile(config_file):
        raise InvalidArgumentError(f"Config file does not exist: {config_file}")
    logging.config.fileConfig(
        config_file, defaults={"logfilename": logfile}, disable_existing_loggers=False
    )
    logger = logging.getLogger("ifutools")
    from . import __email__, __version__
    logger.info(f"This is IFUtools version {__version__}")
    logger.info(f"Contact {__email__} to report bugs, make suggestions, or contribute")
    return logger
