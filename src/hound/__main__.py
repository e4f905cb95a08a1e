"""Entry point for ``python -m hound``."""

from hound.cli import main

if __name__ == "__main__":
    main()
