class BadRequestError(ValueError):
    """Malformed or missing request field, or an unknown model id. Maps to 400."""


class UpstreamError(RuntimeError):
    """The key-value store or the inference endpoint failed. Maps to 500."""
