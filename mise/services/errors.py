class ServiceError(Exception):
    user_message = "Something went wrong while processing this recipe."


class InvalidURLError(ServiceError):
    user_message = "Invalid URL. Please provide a YouTube video URL or a recipe page URL."


class FetchFailedError(ServiceError):
    user_message = "Failed to extract content from URL."


class MetadataFetchError(FetchFailedError):
    pass


class ContentFetchError(FetchFailedError):
    pass


class TranscriptFetchError(FetchFailedError):
    pass


class NoCaptionsError(ServiceError):
    user_message = "This video has no captions available, so the recipe could not be extracted."


class ExtractionError(ServiceError):
    user_message = "Failed to extract recipe."


class RateLimitedError(ExtractionError):
    user_message = "The recipe extraction service is busy. Please try again in a moment."


class ExtractionConfigurationError(ServiceError):
    user_message = "Recipe extraction is not configured."


class NetworkTimeoutError(FetchFailedError):
    def __init__(self, url: str, timeout_seconds: float):
        super().__init__(f"Network timeout after {timeout_seconds}s: {url}")
        self.url = url
        self.timeout_seconds = timeout_seconds
