"""
Verification module for k80stack.

Example:
    from k80stack.core.verify import Verifier

    report = Verifier(config).verify()
"""

from k80stack.core.verify.verifier import Verifier, parse_task_results, task_capability

__all__ = [
    "Verifier",
    "parse_task_results",
    "task_capability",
]
