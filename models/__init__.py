from models.application import Application, Document, ExpectedDocument
from models.business import Business
from models.contact import Contact
from models.lender import Lender, LenderProduct
from models.outbox import OutboxMessage
from models.task import StaffTask
from models.transmission import Transmission

__all__ = [
    "Application",
    "Business",
    "Contact",
    "Document",
    "ExpectedDocument",
    "Lender",
    "LenderProduct",
    "OutboxMessage",
    "StaffTask",
    "Transmission",
]
