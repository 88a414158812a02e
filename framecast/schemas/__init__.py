from framecast.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction

__all__ = [
    "ErrorInfo",
    "ErrorLocation",
    "SuggestedAction",
]
