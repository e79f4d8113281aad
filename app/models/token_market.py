from sqlalchemy import Column, Integer, String, Numeric, DateTime, Index
from app.database import Base
from sqlalchemy.sql import func

PLACEHOLDER_PRICE = 1.0


class TokenMarket(Base):
    __tablename__ = 'token_market'
    __table_args__ = (
        Index('idx_token_market_last_updated', 'last_updated'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(20), nullable=False, unique=True, index=True)
    price_usdt = Column(Numeric(20, 8), nullable=False, default=PLACEHOLDER_PRICE)
    price_change_24h = Column(Numeric(10, 4), nullable=False, default=0)
    price_change_24h_abs = Column(Numeric(20, 8), nullable=False, default=0)
    volume_24h = Column(Numeric(30, 8), nullable=False, default=0)
    market_cap = Column(Numeric(30, 8), nullable=False, default=0)
    # NULL until the first real price lands; placeholders never set it
    last_updated = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    @property
    def is_placeholder(self) -> bool:
        return self.last_updated is None
