"""KeyGate access key lifecycle package.

Public API:
  - KeyLifecycleManager — create / extend / delete / validate
  - ValidationResult    — Valid | Invalid | Expired outcome
  - ValidationStatus    — status enum
"""

from app.keys.lifecycle import KeyLifecycleManager, ValidationResult, ValidationStatus

__all__ = ["KeyLifecycleManager", "ValidationResult", "ValidationStatus"]
