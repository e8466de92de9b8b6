"""Aggregate model imports for Alembic auto-detection."""

# Catalog
from servicehub.models.category import Category  # noqa: F401
from servicehub.models.service import Service  # noqa: F401

# Clients
from servicehub.models.profile import Profile  # noqa: F401

# Assignments & billing
from servicehub.models.assignment import Assignment, RenewalLineItem  # noqa: F401
from servicehub.models.billing_history import BillingHistory  # noqa: F401
from servicehub.models.reminder_log import RenewalReminderLog  # noqa: F401
