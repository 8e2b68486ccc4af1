from .config import Configuration
from .server import run
from .utils.logging import info


def main() -> None:
	info("Starting envreply")
	run(Configuration.FromEnv())


if __name__ == "__main__":
	main()

# EOF
