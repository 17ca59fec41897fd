# vitrine_app/models/__init__.py
# -*- coding: utf-8 -*-
from .user import User, UserProject, PurchaseHistory
from .project import Project
from .payment import Payment, PaymentStatus
from .setting import Setting


__all__ = [
    "User",
    "UserProject",
    "PurchaseHistory",
    "Project",
    "Payment",
    "PaymentStatus",
    "Setting",
]
