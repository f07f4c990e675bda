"""
State machines for the tabulation engine
"""
from tabulation.state_machines.judge_submission import JudgeSubmissionMachine, SubmissionState

__all__ = ["JudgeSubmissionMachine", "SubmissionState"]
