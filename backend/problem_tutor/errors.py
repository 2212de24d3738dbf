class TutorError(Exception):
	"""Base class for failures the API maps to an error response."""

	status_code = 500


class NotFoundError(TutorError):
	status_code = 404


class GatewayError(TutorError):
	"""The generation model was unreachable or returned output of the wrong shape."""


class StoreError(TutorError):
	"""A persistence operation failed or returned no row."""


class ConfigurationError(TutorError):
	pass
