"""Conclusion policy: map what happened to a final status and exit code.

Infrastructure unavailability (no download allowed, install blocked, browser
binaries or runtime broken) never fails a build unless strict mode is on.
Connectivity and application regressions always do.

+-----------------------------------+---------+-----------------------------+--------+
| outcome                           | status  | classification              | exit   |
+-----------------------------------+---------+-----------------------------+--------+
| skip-download flag                | skipped | binary-installation-blocked | strict |
| engine missing                    | failed  | installable-missing         | 1      |
| binaries missing, install blocked | skipped | binary-installation-blocked | strict |
| binaries missing, CI, not strict  | skipped | binary-installation-blocked | 0 (*)  |
| binaries missing, otherwise       | failed  | installable-missing         | 1      |
| server unreachable                | failed  | connectivity-failure        | 1      |
| no browser candidate launched     | failed  | test-failure                | 1      |
| run failed, binary/runtime class  | skipped | binary-installation-blocked | strict |
| run failed, otherwise             | failed  | test-failure                | 1      |
| success                           | passed  | success                     | 0      |
+-----------------------------------+---------+-----------------------------+--------+

"strict" means 1 when PLAYWRIGHT_STRICT=1, else 0.

(*) only while ``PolicyConfig.ci_warn_only`` is on; otherwise the row falls
through to "failed".
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from classifier import is_infrastructure_failure
from config import PolicyConfig
from smoke_types import RunResult, Verdict

SUCCESS = "success"
TEST_FAILURE = "test-failure"
INSTALLABLE_MISSING = "installable-missing"
BINARY_INSTALLATION_BLOCKED = "binary-installation-blocked"
CONNECTIVITY_FAILURE = "connectivity-failure"


class Outcome(str, Enum):
    """Terminal situations the runner can reach."""
    SKIP_DOWNLOAD = "skip-download"
    ENGINE_MISSING = "engine-missing"
    INSTALL_BLOCKED = "install-blocked"
    BINARIES_MISSING = "binaries-missing"
    SERVER_UNREACHABLE = "server-unreachable"
    LAUNCH_FAILED = "launch-failed"
    RUN_FAILED = "run-failed"
    SUCCESS = "success"


def _infrastructure_skip(policy: PolicyConfig) -> Verdict:
    return Verdict(RunResult.SKIPPED, BINARY_INSTALLATION_BLOCKED, 1 if policy.strict else 0)


def decide(
    outcome: Outcome,
    policy: PolicyConfig,
    failure_classification: Optional[str] = None,
) -> Verdict:
    """Pick the verdict for an outcome under the current environment flags."""
    if outcome is Outcome.SUCCESS:
        return Verdict(RunResult.PASSED, SUCCESS, 0)

    if outcome in (Outcome.SKIP_DOWNLOAD, Outcome.INSTALL_BLOCKED):
        return _infrastructure_skip(policy)

    if outcome is Outcome.ENGINE_MISSING:
        return Verdict(RunResult.FAILED, INSTALLABLE_MISSING, 1)

    if outcome is Outcome.BINARIES_MISSING:
        if policy.ci and not policy.strict and policy.ci_warn_only:
            return Verdict(RunResult.SKIPPED, BINARY_INSTALLATION_BLOCKED, 0)
        return Verdict(RunResult.FAILED, INSTALLABLE_MISSING, 1)

    if outcome is Outcome.SERVER_UNREACHABLE:
        return Verdict(RunResult.FAILED, CONNECTIVITY_FAILURE, 1)

    if outcome is Outcome.RUN_FAILED and failure_classification:
        if is_infrastructure_failure(failure_classification):
            return _infrastructure_skip(policy)

    # LAUNCH_FAILED and application-class RUN_FAILED
    return Verdict(RunResult.FAILED, TEST_FAILURE, 1)
