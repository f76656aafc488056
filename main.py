"""Main entry point for Pack Builder."""

from packbuilder.cli import main


if __name__ == "__main__":
    main()
