"""
Adapters around the external collaborators: the circom compiler, the snarkjs
CLI, the powers-of-tau mirrors and the ledger service.

Everything that spawns a process goes through ``adapters.process.ProcessRunner``
so tests can substitute a fake runner.
"""

from .process import ProcessResult, ProcessRunner, SubprocessRunner

__all__ = ["ProcessResult", "ProcessRunner", "SubprocessRunner"]
