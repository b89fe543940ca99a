"""Allow running stackforge as ``python -m stackforge``."""

from stackforge.cli.main import main

if __name__ == "__main__":
    main()
