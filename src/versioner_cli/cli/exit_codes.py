"""Process exit codes of the versioner CLI."""

SUCCESS = 0
GENERAL_ERROR = 1  # invalid arguments, local validation, network failure
API_ERROR = 4  # authentication, validation, server errors
PREFLIGHT_REJECTED = 5  # deployment blocked by a policy rule
