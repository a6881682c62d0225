"""Custom exceptions for mbg_predict package"""

class MBGPredictError(Exception):
    """Base exception for mbg_predict package"""
    pass

# Input-shape errors: wrong dimensionality, mismatched row counts

class InputShapeError(MBGPredictError, ValueError):
    """Raised when inputs have the wrong type, dimensionality or length"""
    pass

class InvalidMeshOrCoords(InputShapeError):
    """Raised when a spatial prediction gets an invalid mesh or non N x 2 coordinates"""
    pass

class InvalidFixedInputs(InputShapeError):
    """Raised when a fixed-effect prediction gets non-tabular data or a bad covariate subset"""
    pass

class RowCountMismatch(InputShapeError):
    """Raised when coordinates and covariate data differ in number of rows"""
    pass

class InvalidConstantShape(InputShapeError):
    """Raised when a constant covariate is not a named numeric scalar"""
    pass

class InvalidDraw(InputShapeError):
    """Raised when a draw index is outside the parameter set"""
    pass

class MissingTemporalExtent(InputShapeError):
    """Raised when a time slice is requested without the number of time slices"""
    pass

class InvalidMethod(InputShapeError):
    """Raised for an estimation method other than 'MAP' or 'sample'"""
    pass

# Model-shape errors: the linear predictor decomposition does not hold

class ModelShapeError(MBGPredictError):
    """Raised when a fitted model is not of the supported shape"""
    pass

class UnsupportedModelShape(ModelShapeError):
    """Raised when a structural precondition on the model or its inputs fails"""
    pass

class InterceptNotSupported(UnsupportedModelShape):
    """Raised when the model contains an INLA intercept term"""
    pass

class InconsistentRandomEffect(UnsupportedModelShape):
    """Raised when the model does not have exactly one random effect block"""
    pass

class MultipleLinkFunctionsUnsupported(ModelShapeError):
    """Raised when the model uses more than one link function"""
    pass

class UnknownLinkFunction(ModelShapeError):
    """Raised for a link function name with no known inverse"""
    pass

class PosteriorSamplingUnavailable(ModelShapeError):
    """Raised when posterior samples are requested from a model fitted without them"""
    pass

# Missing-covariate errors

class MissingCovariateError(MBGPredictError):
    """Raised when a fixed effect has no matching covariate"""
    pass

class MissingColumn(MissingCovariateError):
    """Raised when a fixed effect name is not a column of the prediction data"""
    pass

class UnknownCovariate(MissingCovariateError):
    """Raised when a requested covariate subset names an unknown fixed effect"""
    pass

class DuplicateCovariateName(MissingCovariateError):
    """Raised when a covariate is supplied both as a raster band and a constant"""
    pass

class MissingFixedEffectSource(MissingCovariateError):
    """Raised when a fixed effect is in neither the raster bands nor the constants"""
    pass
