"""Case Custody - Report lifecycle and case custody engine"""

__version__ = "1.0.0"
