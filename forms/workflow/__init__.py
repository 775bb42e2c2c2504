"""
Break/resign workflow - interactive components

- views.py: persistent Break/Resign panel buttons, Inform Comeback and
  Approve Comeback buttons, panel sending
- embeds live in utils/workflow_messages.py
"""

from .views import (
    ApproveComebackButton,
    BreakResignView,
    ComebackRequestView,
    approve_comeback_view,
    handle_workflow_action,
    send_break_embed,
)

__all__ = [
    'ApproveComebackButton',
    'BreakResignView',
    'ComebackRequestView',
    'approve_comeback_view',
    'handle_workflow_action',
    'send_break_embed',
]
