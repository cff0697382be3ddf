"""
PyInstaller entry point stub for peaktune.

This stub script allows PyInstaller to bundle the peaktune package while
preserving its relative imports.
"""

if __name__ == "__main__":
    from peaktune.main import main

    main()
