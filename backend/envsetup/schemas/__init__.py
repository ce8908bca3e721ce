from envsetup.schemas.links import OpenUrlRequest, OpenUrlResponse

__all__ = ["OpenUrlRequest", "OpenUrlResponse"]
