class ApplicationError(Exception):
    pass


class BadRequestError(ApplicationError):
    pass


class EncodingError(ApplicationError):
    pass


class ProviderError(ApplicationError):
    pass


class DirectoryUnavailable(ProviderError):
    """The cluster Service listing could not be read."""
