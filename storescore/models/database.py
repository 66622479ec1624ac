from sqlalchemy import (
    create_engine, Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Index
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, relationship
from datetime import datetime

from ..config import settings


def _engine_options(url: str) -> dict:
    options = {
        "echo": settings.DEBUG,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = 10
        options["max_overflow"] = 20
    return options


# Create engine
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


class User(Base):
    """Registered users"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    is_admin = Column(Boolean, default=False, nullable=False)
    ai_credits = Column(Integer, default=25, nullable=False)
    stripe_customer_id = Column(String(255), index=True)
    subscription_status = Column(String(32), default="none", nullable=False)
    trial_ends_at = Column(DateTime)
    onboarding_completed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    stores = relationship("UserStore", back_populates="user", cascade="all, delete-orphan")
    transactions = relationship("CreditTransaction", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', credits={self.ai_credits})>"


class UserSession(Base):
    """Opaque login sessions"""
    __tablename__ = "user_sessions"

    id = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")

    def __repr__(self):
        return f"<UserSession(user_id={self.user_id}, expires_at={self.expires_at})>"


class UserStore(Base):
    """Stores a user has registered or connected"""
    __tablename__ = "user_stores"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    store_url = Column(String(500))
    store_type = Column(String(16), nullable=False)
    ebay_username = Column(String(255))
    shopify_access_token = Column(String(255))
    shopify_domain = Column(String(255), index=True)
    shopify_scope = Column(String(500))
    is_connected = Column(Boolean, default=False, nullable=False)
    connection_status = Column(String(32), default="disconnected")
    last_sync_at = Column(DateTime)
    last_analyzed_at = Column(DateTime)
    last_analysis_score = Column(Integer)
    ai_recommendations_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="stores")
    analyses = relationship("StoreAnalysis", back_populates="user_store")

    def __repr__(self):
        return f"<UserStore(id={self.id}, name='{self.name}', type='{self.store_type}')>"


class StoreAnalysis(Base):
    """AI scoring results"""
    __tablename__ = "store_analyses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    user_store_id = Column(Integer, ForeignKey("user_stores.id"), nullable=True, index=True)
    store_url = Column(String(500), index=True)
    store_type = Column(String(16), nullable=False)
    ebay_username = Column(String(255))
    overall_score = Column(Integer, nullable=False)
    strengths = Column(JSON, nullable=False)
    warnings = Column(JSON, nullable=False)
    critical = Column(JSON, nullable=False)
    design_score = Column(Integer, nullable=False)
    product_score = Column(Integer, nullable=False)
    seo_score = Column(Integer, nullable=False)
    trust_score = Column(Integer, nullable=False)
    pricing_score = Column(Integer, nullable=False)
    conversion_score = Column(Integer, nullable=False)
    analysis_data = Column(JSON, nullable=False)
    suggestions = Column(JSON, nullable=False)
    summary = Column(Text, nullable=False)
    store_recap = Column(JSON, nullable=False)
    credits_used = Column(Integer, default=1, nullable=False)
    content_hash = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user_store = relationship("UserStore", back_populates="analyses")

    def __repr__(self):
        return f"<StoreAnalysis(id={self.id}, store_type='{self.store_type}', score={self.overall_score})>"


class CreditTransaction(Base):
    """Ledger of credit balance changes"""
    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    amount = Column(Integer, nullable=False)
    description = Column(String(500), nullable=False)
    stripe_payment_id = Column(String(255), unique=True, index=True)
    related_analysis_id = Column(Integer, ForeignKey("store_analyses.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="transactions")

    def __repr__(self):
        return f"<CreditTransaction(id={self.id}, type='{self.type}', amount={self.amount})>"


class SubscriptionPlan(Base):
    """Plans offered through Stripe"""
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    stripe_price_id = Column(String(255), unique=True, nullable=False, index=True)
    stripe_product_id = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)
    currency = Column(String(8), default="usd", nullable=False)
    interval = Column(String(8), default="month", nullable=False)
    ai_credits_included = Column(Integer, default=0, nullable=False)
    max_stores = Column(Integer, default=1, nullable=False)
    features = Column(JSON, default=list, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    trial_days = Column(Integer, default=7, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<SubscriptionPlan(id={self.id}, name='{self.name}', price={self.price})>"


class UserSubscription(Base):
    """Mirror of a user's Stripe subscription"""
    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    stripe_subscription_id = Column(String(255), unique=True, nullable=False, index=True)
    stripe_customer_id = Column(String(255), nullable=False)
    status = Column(String(32), nullable=False)
    current_period_start = Column(DateTime, nullable=False)
    current_period_end = Column(DateTime, nullable=False)
    trial_start = Column(DateTime)
    trial_end = Column(DateTime)
    canceled_at = Column(DateTime)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    plan = relationship("SubscriptionPlan")

    def __repr__(self):
        return f"<UserSubscription(id={self.id}, user_id={self.user_id}, status='{self.status}')>"


class ProductOptimization(Base):
    """AI optimizations applied to Shopify products"""
    __tablename__ = "product_optimizations"
    __table_args__ = (
        Index("product_optimizations_store_product_idx", "user_store_id", "shopify_product_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    user_store_id = Column(Integer, ForeignKey("user_stores.id"), nullable=True)
    shopify_product_id = Column(String(100), nullable=False)
    optimization_type = Column(String(32), nullable=False)
    original_value = Column(Text)
    optimized_value = Column(Text, nullable=False)
    credits_used = Column(Integer, default=1, nullable=False)
    applied_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ProductOptimization(id={self.id}, product='{self.shopify_product_id}', type='{self.optimization_type}')>"


class ChatSession(Base):
    """Assistant conversations"""
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    messages = relationship("ChatMessage", back_populates="session", cascade="all, delete-orphan",
                            order_by="ChatMessage.id")

    def __repr__(self):
        return f"<ChatSession(id={self.id}, title='{self.title}')>"


class ChatMessage(Base):
    """Single chat message"""
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("chat_sessions.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_from_assistant = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    session = relationship("ChatSession", back_populates="messages")

    def __repr__(self):
        return f"<ChatMessage(id={self.id}, assistant={self.is_from_assistant})>"


class ConversationMemory(Base):
    """Topic and summary extracted from a finished conversation"""
    __tablename__ = "conversation_memories"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("chat_sessions.id", ondelete="SET NULL"), nullable=True)
    topic = Column(String(255), nullable=False)
    summary = Column(Text, nullable=False)
    key_points = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ConversationMemory(id={self.id}, topic='{self.topic}')>"


# Database utility functions
def create_tables():
    """Create all database tables"""
    Base.metadata.create_all(bind=engine)


def drop_tables():
    """Drop all database tables (use with caution)"""
    Base.metadata.drop_all(bind=engine)
