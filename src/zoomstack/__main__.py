"""Entry point for ZoomStack."""

from zoomstack.preprocess.__main__ import main

if __name__ == "__main__":
    main()
