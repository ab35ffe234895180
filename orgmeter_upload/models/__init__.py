"""Database models."""
from orgmeter_upload.models.payout import Payout
from orgmeter_upload.models.reference import Advance, Syndicator, User
from orgmeter_upload.models.upload_job import UploadJob
from orgmeter_upload.models.upload_payment import UploadPayment

__all__ = ["Advance", "Payout", "Syndicator", "UploadJob", "UploadPayment", "User"]
