from dataclasses import dataclass
from os import getenv, environ
from typing import Mapping

PORT: int = int(getenv("PORT", 8080))

# The service is meant to run in a container, so we listen on every interface
HOST: str = getenv("HOST", "0.0.0.0")  # nosec: B104

LOG_REQUESTS: bool = getenv("ENVREPLY_LOG_REQUESTS", "1") == "1"

LOG_LEVEL: str = getenv("ENVREPLY_LOG_LEVEL", "info")

# Name of the environment variable holding the response value
RESPONSE_VARIABLE: str = "response"

# What gets rendered when the response variable is not set
ABSENT: str = "undefined"


@dataclass(slots=True, frozen=True)
class Configuration:
	"""The response configuration, captured once when the process starts
	and shared read-only by every request."""

	responseValue: str | None = None

	@staticmethod
	def FromEnv(
		env: Mapping[str, str] | None = None, name: str = RESPONSE_VARIABLE
	) -> "Configuration":
		"""Reads the response value from the given mapping (the process
		environment by default). An unset variable gives the absent marker,
		an empty one is kept as an empty string."""
		return Configuration(
			responseValue=(environ if env is None else env).get(name)
		)

	@property
	def isAbsent(self) -> bool:
		return self.responseValue is None

	@property
	def responseText(self) -> str:
		return ABSENT if self.responseValue is None else self.responseValue


# EOF
