"""Entry point for running the transmitter as a module."""

from .main import main

if __name__ == "__main__":
    main()
