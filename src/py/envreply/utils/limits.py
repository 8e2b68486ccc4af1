from typing import NamedTuple
from enum import Enum
import resource


class LimitType(Enum):
	Files = resource.RLIMIT_NOFILE


REASONABLE_LIMITS: dict[LimitType, int] = {
	# Each connection holds a file descriptor
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(scope.value))


def unlimit(
	scope: LimitType, ratio: float = 1.0, *, maximum: int | None = 0
) -> int | bool:
	"""Raises the soft limit towards the hard limit, capped to a reasonable
	maximum. Returns the new limit, or `False` when it could not be set."""
	lm = limit(scope)
	if lm.soft == resource.RLIM_INFINITY:
		return lm.soft
	try:
		# An unlimited hard limit is capped by the reasonable limit instead
		hard: int = (
			REASONABLE_LIMITS.get(scope, lm.soft)
			if lm.hard == resource.RLIM_INFINITY
			else lm.hard
		)
		target = int(lm.soft + ratio * (hard - lm.soft))
		# We apply reasonable limits, as for instance Darwin has really high
		# limits that will lead to OverflowErrors.
		maximum = REASONABLE_LIMITS.get(scope) if maximum == 0 else maximum
		if maximum:
			target = min(maximum, target)
		target = max(target, lm.soft)
		resource.setrlimit(scope.value, (target, lm.hard))
		return target
	except ValueError:
		return False
	except OSError:
		return False


# EOF
