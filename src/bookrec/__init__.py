"""
Book-Adapted Character Recognizer
=================================

A trainable, template-based recognizer for machine-printed characters
from a single source (one book, one font).

Main components:
- Template store with averaged templates per class
- Correlation matching with vertical alignment search
- Line decoding by dynamic programming with a rescoring pass
- Outlier detection on labeled samples
- Bootstrapping from a generic donor recognizer
"""

__version__ = "1.0.0"
__author__ = "Bookrec Team"
