"""Secret rotator - periodic credential rotation into external secret stores."""

__version__ = "0.1.0"
__author__ = "Secret Rotator Team"
