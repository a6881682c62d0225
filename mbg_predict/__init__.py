"""
MBG_PREDICT: Prediction from INLA model-based geostatistics (MBG) models
"""

__version__ = "0.1.0"

# Main prediction API
from .inla_predict import (
    predict_inla,
    predict_raster_inla,
    PredictionRequest,
    PredictionType,
    PredictionMethod,
)

# Model description
from .model import (
    FittedModel,
    PosteriorSample,
    RandomEffectKind,
)

# Core components (for advanced users)
from .parameters import (
    extract_parameters,
    ParameterSet,
    FixedRole,
    SpatialRole,
    HyperRole,
)
from .predict import (
    predict_fixed,
    predict_spatial,
    predict_all,
    fill_missing_covariates,
)
from .mesh import SPDEMesh, MeshProjector
from .grid import Grid
from .links import LinkFunction, get_link_function

# Exceptions
from .exceptions import (
    MBGPredictError,
    InputShapeError,
    ModelShapeError,
    MissingCovariateError,
    InvalidMeshOrCoords,
    InvalidFixedInputs,
    RowCountMismatch,
    InvalidConstantShape,
    InvalidDraw,
    MissingTemporalExtent,
    InvalidMethod,
    UnsupportedModelShape,
    InterceptNotSupported,
    InconsistentRandomEffect,
    MultipleLinkFunctionsUnsupported,
    UnknownLinkFunction,
    PosteriorSamplingUnavailable,
    MissingColumn,
    UnknownCovariate,
    DuplicateCovariateName,
    MissingFixedEffectSource,
)

__all__ = [
    # Main API
    'predict_inla',
    'predict_raster_inla',
    'PredictionRequest',
    'PredictionType',
    'PredictionMethod',

    # Model
    'FittedModel',
    'PosteriorSample',
    'RandomEffectKind',

    # Core components
    'extract_parameters',
    'ParameterSet',
    'FixedRole',
    'SpatialRole',
    'HyperRole',
    'predict_fixed',
    'predict_spatial',
    'predict_all',
    'fill_missing_covariates',
    'SPDEMesh',
    'MeshProjector',
    'Grid',
    'LinkFunction',
    'get_link_function',

    # Exceptions
    'MBGPredictError',
    'InputShapeError',
    'ModelShapeError',
    'MissingCovariateError',
    'InvalidMeshOrCoords',
    'InvalidFixedInputs',
    'RowCountMismatch',
    'InvalidConstantShape',
    'InvalidDraw',
    'MissingTemporalExtent',
    'InvalidMethod',
    'UnsupportedModelShape',
    'InterceptNotSupported',
    'InconsistentRandomEffect',
    'MultipleLinkFunctionsUnsupported',
    'UnknownLinkFunction',
    'PosteriorSamplingUnavailable',
    'MissingColumn',
    'UnknownCovariate',
    'DuplicateCovariateName',
    'MissingFixedEffectSource',
]
