"""Database models package with tenant-aware entities."""
from .client import Client
from .job import Job, JobFrequency, JobStatus
from .payment import Payment, PaymentStatus, Receipt
from .profile import Profile, ProfileRole

__all__ = [
    "Client",
    "Job",
    "JobFrequency",
    "JobStatus",
    "Payment",
    "PaymentStatus",
    "Profile",
    "ProfileRole",
    "Receipt",
]
