# models/mpesa_config.py
import uuid

from sqlalchemy import Column, String, Text, Boolean, DateTime, Uuid, func

from .base import Base


class LandlordMpesaConfig(Base):
     """
     A landlord's own Daraja credentials. Secret fields hold AES-GCM
     ciphertext (see utils.encryption), never plaintext.
     Maps to existing 'landlord_mpesa_configs' table in the database.
     """
     __tablename__ = "landlord_mpesa_configs"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     landlord_id = Column(Uuid, nullable=False, unique=True, index=True)

     consumer_key_encrypted = Column(Text, nullable=False)
     consumer_secret_encrypted = Column(Text, nullable=False)
     shortcode_encrypted = Column(Text, nullable=False)
     passkey_encrypted = Column(Text, nullable=False)

     callback_url = Column(Text, nullable=True)
     environment = Column(String(20), default="sandbox", nullable=False)
     is_active = Column(Boolean, default=True, nullable=False)

     created_at = Column(DateTime(timezone=True), server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

     def __repr__(self):
          return f"<LandlordMpesaConfig(landlord_id={self.landlord_id}, env='{self.environment}', active={self.is_active})>"
