__version__ = "1.0.0"
__email__ = "sellers@nmsu.edu"

from .exceptions import (DivideByZeroError, IFUToolsError, InsufficientDataError,
                         InvalidArgumentError, InvalidDimensionError)
from .config import ExtractConfig, NormalizeConfig, configure_logging
from .spectral.spectraTools import NormalizedResult, normalize_continuum
from .tools.alignment_tools import ExtractionResult, extract_subimage
