"""
trustpay_transfer

Funds-transfer workflow orchestrator for the TrustPay front-end:
- workflow.py: TransferWorkflow (state machine, validation, submission)
- validators/: debounced routing resolution and destination verification
- authorization.py: transaction PIN gate
- cache.py: optimistic balance / limits replica
- calculator.py: fees, totals and transfer ceilings
"""

from .workflow import TransferWorkflow, WorkflowState  # noqa: F401
