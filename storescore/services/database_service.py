import logging
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional, Dict, Any, Tuple

from sqlalchemy import desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.database import (
    SessionLocal, User, UserSession, UserStore, StoreAnalysis, CreditTransaction,
    SubscriptionPlan, UserSubscription, ProductOptimization, ChatSession, ChatMessage,
    ConversationMemory, create_tables
)
from ..exceptions import InsufficientCreditsError, NotFoundError

logger = logging.getLogger(__name__)

USER_FIELDS = {
    'first_name', 'last_name', 'is_admin', 'stripe_customer_id', 'subscription_status',
    'trial_ends_at', 'onboarding_completed',
}
STORE_FIELDS = {
    'name', 'store_url', 'store_type', 'ebay_username', 'shopify_access_token', 'shopify_domain',
    'shopify_scope', 'is_connected', 'connection_status', 'last_sync_at', 'last_analyzed_at',
    'last_analysis_score', 'ai_recommendations_count',
}
SUBSCRIPTION_FIELDS = {
    'status', 'current_period_start', 'current_period_end', 'trial_start', 'trial_end',
    'canceled_at', 'cancel_at_period_end', 'plan_id',
}


class DatabaseService:
    def __init__(self):
        # Ensure tables exist
        create_tables()

    def get_session(self) -> Session:
        """Get database session"""
        return SessionLocal()

    @contextmanager
    def session_scope(self):
        """Session that commits on success and rolls back on error"""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Database transaction rolled back: {e}")
            raise
        finally:
            db.close()

    # Users
    def create_user(self, email: str, password_hash: str, first_name: str, last_name: str,
                    initial_credits: int = 0) -> Dict[str, Any]:
        """Create a user and record the sign-up bonus, if any, in the same transaction"""
        with self.session_scope() as db:
            user = User(
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                ai_credits=initial_credits,
            )
            db.add(user)
            db.flush()

            if initial_credits > 0:
                db.add(CreditTransaction(
                    user_id=user.id,
                    type='bonus',
                    amount=initial_credits,
                    description='Welcome bonus credits',
                ))

            logger.info(f"Created user {user.id} with {initial_credits} credits")
            return self._user_to_dict(user)

    def get_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            user = db.get(User, user_id)
            return self._user_to_dict(user) if user else None

    def get_user_by_email(self, email: str, include_password: bool = False) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            user = db.query(User).filter(User.email == email.lower()).first()
            return self._user_to_dict(user, include_password) if user else None

    def get_user_by_stripe_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            user = db.query(User).filter(User.stripe_customer_id == customer_id).first()
            return self._user_to_dict(user) if user else None

    def update_user(self, user_id: int, **fields) -> Dict[str, Any]:
        with self.session_scope() as db:
            user = db.get(User, user_id)
            if not user:
                raise NotFoundError("User", user_id)
            for key, value in fields.items():
                if key not in USER_FIELDS:
                    raise ValueError(f"Unknown user field: {key}")
                setattr(user, key, value)
            db.flush()
            return self._user_to_dict(user)

    # Sessions
    def create_session(self, token: str, user_id: int, expires_at: datetime) -> Dict[str, Any]:
        with self.session_scope() as db:
            session = UserSession(id=token, user_id=user_id, expires_at=expires_at)
            db.add(session)
            db.flush()
            return self._session_to_dict(session)

    def get_session_record(self, token: str) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            session = db.get(UserSession, token)
            return self._session_to_dict(session) if session else None

    def delete_session(self, token: str) -> bool:
        with self.session_scope() as db:
            deleted = db.query(UserSession).filter(UserSession.id == token).delete()
            return deleted > 0

    def purge_expired_sessions(self) -> int:
        with self.session_scope() as db:
            deleted = db.query(UserSession).filter(UserSession.expires_at < datetime.utcnow()).delete()
            if deleted:
                logger.info(f"Purged {deleted} expired sessions")
            return deleted

    # Stores
    def get_user_stores(self, user_id: int) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            stores = (db.query(UserStore)
                      .filter(UserStore.user_id == user_id)
                      .order_by(desc(UserStore.created_at), desc(UserStore.id))
                      .all())
            return [self._store_to_dict(s) for s in stores]

    def get_user_store(self, store_id: int, user_id: Optional[int] = None,
                       include_token: bool = False) -> Optional[Dict[str, Any]]:
        """Store by id; with ``user_id`` set, stores owned by someone else come back as None"""
        with self.session_scope() as db:
            query = db.query(UserStore).filter(UserStore.id == store_id)
            if user_id is not None:
                query = query.filter(UserStore.user_id == user_id)
            store = query.first()
            return self._store_to_dict(store, include_token) if store else None

    def get_store_by_shop_domain(self, shop_domain: str) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            stores = db.query(UserStore).filter(UserStore.shopify_domain == shop_domain).all()
            return [self._store_to_dict(s) for s in stores]

    def create_user_store(self, user_id: int, **fields) -> Dict[str, Any]:
        with self.session_scope() as db:
            store = UserStore(user_id=user_id)
            self._apply(store, fields, STORE_FIELDS)
            db.add(store)
            db.flush()
            logger.info(f"Created {store.store_type} store {store.id} for user {user_id}")
            return self._store_to_dict(store)

    def update_user_store(self, store_id: int, user_id: Optional[int] = None, **fields) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            query = db.query(UserStore).filter(UserStore.id == store_id)
            if user_id is not None:
                query = query.filter(UserStore.user_id == user_id)
            store = query.first()
            if not store:
                return None
            self._apply(store, fields, STORE_FIELDS)
            db.flush()
            return self._store_to_dict(store)

    def delete_user_store(self, store_id: int, user_id: int) -> bool:
        """Delete a store, detaching its analyses and optimizations first"""
        with self.session_scope() as db:
            store = db.query(UserStore).filter(UserStore.id == store_id, UserStore.user_id == user_id).first()
            if not store:
                return False

            db.query(StoreAnalysis).filter(StoreAnalysis.user_store_id == store_id).update(
                {StoreAnalysis.user_store_id: None}, synchronize_session=False)
            db.query(ProductOptimization).filter(ProductOptimization.user_store_id == store_id).update(
                {ProductOptimization.user_store_id: None}, synchronize_session=False)
            db.delete(store)
            logger.info(f"Deleted store {store_id} for user {user_id}")
            return True

    # Analyses
    def _insert_analysis(self, db: Session, result: Dict[str, Any], store_type: str, user_id: Optional[int],
                         user_store_id: Optional[int], store_url: Optional[str], ebay_username: Optional[str],
                         credits_used: int) -> StoreAnalysis:
        analysis = StoreAnalysis(
            user_id=user_id,
            user_store_id=user_store_id,
            store_url=store_url,
            store_type=store_type,
            ebay_username=ebay_username,
            overall_score=result['overallScore'],
            strengths=result['strengths'],
            warnings=result['warnings'],
            critical=result['critical'],
            design_score=result['designScore'],
            product_score=result['productScore'],
            seo_score=result['seoScore'],
            trust_score=result['trustScore'],
            pricing_score=result['pricingScore'],
            conversion_score=result['conversionScore'],
            analysis_data=result,
            suggestions=result.get('suggestions', []),
            summary=result.get('summary', ''),
            store_recap=result.get('storeRecap', {}),
            credits_used=credits_used,
            content_hash=result.get('contentHash'),
        )
        db.add(analysis)
        db.flush()
        logger.info(f"Saved analysis {analysis.id} for {store_url or ebay_username}")
        return analysis

    def create_analysis(self, result: Dict[str, Any], store_type: str, user_id: Optional[int] = None,
                        user_store_id: Optional[int] = None, store_url: Optional[str] = None,
                        ebay_username: Optional[str] = None) -> Dict[str, Any]:
        """
        Persist a normalized analysis result nobody pays for (guest analyses)

        Args:
            result: camelCase result from the AI analyzer

        Returns:
            dict: the stored analysis
        """
        with self.session_scope() as db:
            analysis = self._insert_analysis(db, result, store_type, user_id, user_store_id, store_url,
                                             ebay_username, credits_used=0)
            return self._analysis_to_dict(analysis)

    def create_charged_analysis(self, result: Dict[str, Any], store_type: str, user_id: int, credits_used: int,
                                description: str, user_store_id: Optional[int] = None,
                                store_url: Optional[str] = None,
                                ebay_username: Optional[str] = None) -> Tuple[Dict[str, Any], int]:
        """
        Persist an analysis and charge for it in one transaction

        Nothing is stored when the charge fails.

        Returns:
            tuple: the stored analysis and the new credit balance

        Raises:
            InsufficientCreditsError: when the balance is lower than ``credits_used``
        """
        with self.session_scope() as db:
            analysis = self._insert_analysis(db, result, store_type, user_id, user_store_id, store_url,
                                             ebay_username, credits_used)
            balance = self._take_credits(db, user_id, credits_used, description, related_analysis_id=analysis.id)
            return self._analysis_to_dict(analysis), balance

    def get_analysis(self, analysis_id: int) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            analysis = db.get(StoreAnalysis, analysis_id)
            return self._analysis_to_dict(analysis) if analysis else None

    def get_user_analyses(self, user_id: int, limit: int = 20) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            analyses = (db.query(StoreAnalysis)
                        .filter(StoreAnalysis.user_id == user_id)
                        .order_by(desc(StoreAnalysis.created_at), desc(StoreAnalysis.id))
                        .limit(limit)
                        .all())
            return [self._analysis_to_dict(a) for a in analyses]

    def get_store_analyses(self, store_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            analyses = (db.query(StoreAnalysis)
                        .filter(StoreAnalysis.user_store_id == store_id)
                        .order_by(desc(StoreAnalysis.created_at), desc(StoreAnalysis.id))
                        .limit(limit)
                        .all())
            return [self._analysis_to_dict(a) for a in analyses]

    def get_latest_analysis_for_url(self, store_url: str, user_id: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """Most recent analysis of a URL that carries a content hash"""
        with self.session_scope() as db:
            query = db.query(StoreAnalysis).filter(
                StoreAnalysis.store_url == store_url,
                StoreAnalysis.content_hash.isnot(None),
            )
            if user_id is not None:
                query = query.filter(StoreAnalysis.user_id == user_id)
            analysis = query.order_by(desc(StoreAnalysis.created_at), desc(StoreAnalysis.id)).first()
            return self._analysis_to_dict(analysis) if analysis else None

    def get_recent_analyses(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent store analyses"""
        db = self.get_session()
        try:
            analyses = (db.query(StoreAnalysis)
                        .order_by(desc(StoreAnalysis.created_at), desc(StoreAnalysis.id))
                        .limit(limit)
                        .all())

            return [{
                'id': a.id,
                'storeType': a.store_type,
                'storeUrl': a.store_url,
                'ebayUsername': a.ebay_username,
                'overallScore': a.overall_score,
                'createdAt': a.created_at
            } for a in analyses]

        except Exception as e:
            logger.error(f"Error getting recent analyses: {e}")
            return []
        finally:
            db.close()

    def get_analysis_statistics(self, user_id: Optional[int] = None) -> Dict[str, Any]:
        """Counts and averages, for one user or the whole platform"""
        db = self.get_session()
        try:
            query = db.query(StoreAnalysis)
            if user_id is not None:
                query = query.filter(StoreAnalysis.user_id == user_id)

            average = query.with_entities(func.avg(StoreAnalysis.overall_score)).scalar()
            by_type = dict(
                query.with_entities(StoreAnalysis.store_type, func.count(StoreAnalysis.id))
                .group_by(StoreAnalysis.store_type)
                .all()
            )

            stats = {
                'totalAnalyses': query.count(),
                'averageScore': round(float(average), 1) if average is not None else None,
                'shopifyAnalyses': by_type.get('shopify', 0),
                'ebayAnalyses': by_type.get('ebay', 0),
            }
            if user_id is not None:
                stats['totalStores'] = db.query(UserStore).filter(UserStore.user_id == user_id).count()
                stats['creditsUsed'] = -(db.query(func.coalesce(func.sum(CreditTransaction.amount), 0))
                                         .filter(CreditTransaction.user_id == user_id,
                                                 CreditTransaction.type == 'usage')
                                         .scalar())
            return stats

        except Exception as e:
            logger.error(f"Error getting statistics: {e}")
            return {}
        finally:
            db.close()

    # Credits
    def get_user_credits(self, user_id: int) -> int:
        with self.session_scope() as db:
            credits = db.query(User.ai_credits).filter(User.id == user_id).scalar()
            if credits is None:
                raise NotFoundError("User", user_id)
            return credits

    def _take_credits(self, db: Session, user_id: int, amount: int, description: str,
                      related_analysis_id: Optional[int] = None) -> int:
        updated = (db.query(User)
                   .filter(User.id == user_id, User.ai_credits >= amount)
                   .update({User.ai_credits: User.ai_credits - amount}, synchronize_session=False))
        if not updated:
            available = db.query(User.ai_credits).filter(User.id == user_id).scalar()
            if available is None:
                raise NotFoundError("User", user_id)
            raise InsufficientCreditsError(required=amount, available=available)

        db.add(CreditTransaction(
            user_id=user_id,
            type='usage',
            amount=-amount,
            description=description,
            related_analysis_id=related_analysis_id,
        ))
        balance = db.query(User.ai_credits).filter(User.id == user_id).scalar()
        logger.info(f"Deducted {amount} credits from user {user_id}, balance {balance}")
        return balance

    def deduct_credits(self, user_id: int, amount: int, description: str,
                       related_analysis_id: Optional[int] = None) -> int:
        """
        Atomically take ``amount`` credits and record a usage transaction

        Returns:
            int: the new balance

        Raises:
            InsufficientCreditsError: when the balance is lower than ``amount``
        """
        with self.session_scope() as db:
            return self._take_credits(db, user_id, amount, description, related_analysis_id)

    def _payment_recorded(self, db: Session, stripe_payment_id: str) -> bool:
        return (db.query(CreditTransaction.id)
                .filter(CreditTransaction.stripe_payment_id == stripe_payment_id)
                .first()) is not None

    def add_credits(self, user_id: int, amount: int, description: str,
                    stripe_payment_id: Optional[str] = None, transaction_type: str = 'purchase') -> Optional[int]:
        """
        Add credits and record the transaction

        A payment id is credited at most once. Concurrent deliveries of the same
        payment are stopped by the unique constraint on ``stripe_payment_id``.

        Returns:
            int: the new balance, or None when ``stripe_payment_id`` was already credited
        """
        with self.session_scope() as db:
            if stripe_payment_id and self._payment_recorded(db, stripe_payment_id):
                logger.info(f"Payment {stripe_payment_id} already credited, skipping")
                return None

            updated = (db.query(User)
                       .filter(User.id == user_id)
                       .update({User.ai_credits: User.ai_credits + amount}, synchronize_session=False))
            if not updated:
                raise NotFoundError("User", user_id)

            db.add(CreditTransaction(
                user_id=user_id,
                type=transaction_type,
                amount=amount,
                description=description,
                stripe_payment_id=stripe_payment_id,
            ))
            try:
                db.flush()
            except IntegrityError:
                db.rollback()
                logger.info(f"Payment {stripe_payment_id} credited concurrently, skipping")
                return None

            balance = db.query(User.ai_credits).filter(User.id == user_id).scalar()
            logger.info(f"Added {amount} credits ({transaction_type}) to user {user_id}, balance {balance}")
            return balance

    def get_credit_transactions(self, user_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            transactions = (db.query(CreditTransaction)
                            .filter(CreditTransaction.user_id == user_id)
                            .order_by(desc(CreditTransaction.created_at), desc(CreditTransaction.id))
                            .limit(limit)
                            .all())
            return [self._transaction_to_dict(t) for t in transactions]

    # Subscriptions
    def get_active_plans(self) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            plans = (db.query(SubscriptionPlan)
                     .filter(SubscriptionPlan.is_active.is_(True))
                     .order_by(SubscriptionPlan.price)
                     .all())
            return [self._plan_to_dict(p) for p in plans]

    def get_plan(self, plan_id: int) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            plan = db.get(SubscriptionPlan, plan_id)
            return self._plan_to_dict(plan) if plan else None

    def get_plan_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            plan = (db.query(SubscriptionPlan)
                    .filter(SubscriptionPlan.name == name, SubscriptionPlan.is_active.is_(True))
                    .first())
            return self._plan_to_dict(plan) if plan else None

    def create_plan(self, **fields) -> Dict[str, Any]:
        with self.session_scope() as db:
            plan = SubscriptionPlan(**fields)
            db.add(plan)
            db.flush()
            return self._plan_to_dict(plan)

    def get_user_subscription(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            subscription = (db.query(UserSubscription)
                            .filter(UserSubscription.user_id == user_id)
                            .order_by(desc(UserSubscription.created_at), desc(UserSubscription.id))
                            .first())
            return self._subscription_to_dict(subscription) if subscription else None

    def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            subscription = (db.query(UserSubscription)
                            .filter(UserSubscription.stripe_subscription_id == stripe_subscription_id)
                            .first())
            return self._subscription_to_dict(subscription) if subscription else None

    def create_user_subscription(self, user_id: int, plan_id: int, stripe_subscription_id: str,
                                 stripe_customer_id: str, **fields) -> Dict[str, Any]:
        with self.session_scope() as db:
            subscription = UserSubscription(
                user_id=user_id,
                plan_id=plan_id,
                stripe_subscription_id=stripe_subscription_id,
                stripe_customer_id=stripe_customer_id,
            )
            self._apply(subscription, fields, SUBSCRIPTION_FIELDS)
            db.add(subscription)
            db.flush()
            logger.info(f"Stored subscription {stripe_subscription_id} for user {user_id}")
            return self._subscription_to_dict(subscription)

    def update_user_subscription(self, subscription_id: int, **fields) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            subscription = db.get(UserSubscription, subscription_id)
            if not subscription:
                return None
            self._apply(subscription, fields, SUBSCRIPTION_FIELDS)
            db.flush()
            return self._subscription_to_dict(subscription)

    # Product optimizations
    def record_product_optimization(self, user_id: int, user_store_id: int, shopify_product_id: str,
                                    optimization_type: str, original_value: Optional[str],
                                    optimized_value: str, credits_used: int = 1) -> Dict[str, Any]:
        with self.session_scope() as db:
            optimization = ProductOptimization(
                user_id=user_id,
                user_store_id=user_store_id,
                shopify_product_id=str(shopify_product_id),
                optimization_type=optimization_type,
                original_value=original_value,
                optimized_value=optimized_value,
                credits_used=credits_used,
            )
            db.add(optimization)
            db.query(UserStore).filter(UserStore.id == user_store_id).update(
                {UserStore.ai_recommendations_count: func.coalesce(UserStore.ai_recommendations_count, 0) + 1},
                synchronize_session=False)
            db.flush()
            return self._optimization_to_dict(optimization)

    def get_store_optimizations(self, user_store_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            optimizations = (db.query(ProductOptimization)
                             .filter(ProductOptimization.user_store_id == user_store_id)
                             .order_by(desc(ProductOptimization.applied_at), desc(ProductOptimization.id))
                             .limit(limit)
                             .all())
            return [self._optimization_to_dict(o) for o in optimizations]

    def get_optimization_summary(self, user_store_id: int) -> Optional[Dict[str, Any]]:
        """Counts used to tell the scorer a store has been optimized; None when nothing was applied"""
        with self.session_scope() as db:
            rows = (db.query(ProductOptimization.shopify_product_id, ProductOptimization.optimization_type)
                    .filter(ProductOptimization.user_store_id == user_store_id)
                    .all())
            if not rows:
                return None
            return {
                'optimized_products_count': len({product_id for product_id, _ in rows}),
                'total_optimizations': len(rows),
                'optimization_types': sorted({opt_type for _, opt_type in rows}),
            }

    # Chat
    def create_chat_session(self, user_id: int, title: str) -> Dict[str, Any]:
        with self.session_scope() as db:
            session = ChatSession(user_id=user_id, title=title)
            db.add(session)
            db.flush()
            return self._chat_session_to_dict(session)

    def get_chat_sessions(self, user_id: int, limit: int = 20) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            sessions = (db.query(ChatSession)
                        .filter(ChatSession.user_id == user_id, ChatSession.is_active.is_(True))
                        .order_by(desc(ChatSession.updated_at), desc(ChatSession.id))
                        .limit(limit)
                        .all())
            return [self._chat_session_to_dict(s) for s in sessions]

    def get_chat_session(self, session_id: int, user_id: int) -> Optional[Dict[str, Any]]:
        with self.session_scope() as db:
            session = (db.query(ChatSession)
                       .filter(ChatSession.id == session_id, ChatSession.user_id == user_id)
                       .first())
            return self._chat_session_to_dict(session) if session else None

    def delete_chat_session(self, session_id: int, user_id: int) -> bool:
        with self.session_scope() as db:
            session = (db.query(ChatSession)
                       .filter(ChatSession.id == session_id, ChatSession.user_id == user_id)
                       .first())
            if not session:
                return False
            db.query(ConversationMemory).filter(ConversationMemory.session_id == session_id).update(
                {ConversationMemory.session_id: None}, synchronize_session=False)
            db.delete(session)
            return True

    def add_chat_message(self, session_id: int, content: str, is_from_assistant: bool = False) -> Dict[str, Any]:
        with self.session_scope() as db:
            message = ChatMessage(session_id=session_id, content=content, is_from_assistant=is_from_assistant)
            db.add(message)
            db.query(ChatSession).filter(ChatSession.id == session_id).update(
                {ChatSession.updated_at: datetime.utcnow()}, synchronize_session=False)
            db.flush()
            return self._message_to_dict(message)

    def get_chat_messages(self, session_id: int, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Messages oldest first; with ``limit`` only the most recent ones"""
        with self.session_scope() as db:
            query = db.query(ChatMessage).filter(ChatMessage.session_id == session_id)
            if limit:
                messages = query.order_by(desc(ChatMessage.id)).limit(limit).all()
                messages.reverse()
            else:
                messages = query.order_by(ChatMessage.id).all()
            return [self._message_to_dict(m) for m in messages]

    def add_conversation_memory(self, user_id: int, session_id: Optional[int], topic: str, summary: str,
                                key_points: Optional[List[str]] = None) -> Dict[str, Any]:
        with self.session_scope() as db:
            memory = ConversationMemory(
                user_id=user_id,
                session_id=session_id,
                topic=topic,
                summary=summary,
                key_points=key_points or [],
            )
            db.add(memory)
            db.flush()
            return self._memory_to_dict(memory)

    def get_conversation_memories(self, user_id: int, limit: int = 5) -> List[Dict[str, Any]]:
        with self.session_scope() as db:
            memories = (db.query(ConversationMemory)
                        .filter(ConversationMemory.user_id == user_id)
                        .order_by(desc(ConversationMemory.created_at), desc(ConversationMemory.id))
                        .limit(limit)
                        .all())
            return [self._memory_to_dict(m) for m in memories]

    # Helper methods to convert ORM objects to dictionaries
    @staticmethod
    def _apply(obj, fields: Dict[str, Any], allowed: set):
        for key, value in fields.items():
            if key not in allowed:
                raise ValueError(f"Unknown field for {type(obj).__name__}: {key}")
            setattr(obj, key, value)

    def _user_to_dict(self, user: User, include_password: bool = False) -> Dict[str, Any]:
        data = {
            'id': user.id,
            'email': user.email,
            'firstName': user.first_name,
            'lastName': user.last_name,
            'isAdmin': user.is_admin,
            'aiCredits': user.ai_credits,
            'stripeCustomerId': user.stripe_customer_id,
            'subscriptionStatus': user.subscription_status,
            'trialEndsAt': user.trial_ends_at,
            'onboardingCompleted': user.onboarding_completed,
            'createdAt': user.created_at,
            'updatedAt': user.updated_at,
        }
        if include_password:
            data['passwordHash'] = user.password_hash
        return data

    def _session_to_dict(self, session: UserSession) -> Dict[str, Any]:
        return {
            'id': session.id,
            'userId': session.user_id,
            'expiresAt': session.expires_at,
            'createdAt': session.created_at,
        }

    def _store_to_dict(self, store: UserStore, include_token: bool = False) -> Dict[str, Any]:
        data = {
            'id': store.id,
            'userId': store.user_id,
            'name': store.name,
            'storeUrl': store.store_url,
            'storeType': store.store_type,
            'ebayUsername': store.ebay_username,
            'shopifyDomain': store.shopify_domain,
            'shopifyScope': store.shopify_scope,
            'isConnected': store.is_connected,
            'connectionStatus': store.connection_status,
            'lastSyncAt': store.last_sync_at,
            'lastAnalyzedAt': store.last_analyzed_at,
            'lastAnalysisScore': store.last_analysis_score,
            'aiRecommendationsCount': store.ai_recommendations_count,
            'createdAt': store.created_at,
            'updatedAt': store.updated_at,
        }
        if include_token:
            data['shopifyAccessToken'] = store.shopify_access_token
        return data

    def _analysis_to_dict(self, analysis: StoreAnalysis) -> Dict[str, Any]:
        return {
            'id': analysis.id,
            'userId': analysis.user_id,
            'userStoreId': analysis.user_store_id,
            'storeUrl': analysis.store_url,
            'storeType': analysis.store_type,
            'ebayUsername': analysis.ebay_username,
            'overallScore': analysis.overall_score,
            'strengths': analysis.strengths,
            'warnings': analysis.warnings,
            'critical': analysis.critical,
            'designScore': analysis.design_score,
            'productScore': analysis.product_score,
            'seoScore': analysis.seo_score,
            'trustScore': analysis.trust_score,
            'pricingScore': analysis.pricing_score,
            'conversionScore': analysis.conversion_score,
            'analysisData': analysis.analysis_data,
            'suggestions': analysis.suggestions,
            'summary': analysis.summary,
            'storeRecap': analysis.store_recap,
            'creditsUsed': analysis.credits_used,
            'contentHash': analysis.content_hash,
            'createdAt': analysis.created_at,
        }

    def _transaction_to_dict(self, transaction: CreditTransaction) -> Dict[str, Any]:
        return {
            'id': transaction.id,
            'userId': transaction.user_id,
            'type': transaction.type,
            'amount': transaction.amount,
            'description': transaction.description,
            'stripePaymentId': transaction.stripe_payment_id,
            'relatedAnalysisId': transaction.related_analysis_id,
            'createdAt': transaction.created_at,
        }

    def _plan_to_dict(self, plan: SubscriptionPlan) -> Dict[str, Any]:
        return {
            'id': plan.id,
            'name': plan.name,
            'description': plan.description,
            'stripePriceId': plan.stripe_price_id,
            'stripeProductId': plan.stripe_product_id,
            'price': plan.price,
            'currency': plan.currency,
            'interval': plan.interval,
            'aiCreditsIncluded': plan.ai_credits_included,
            'maxStores': plan.max_stores,
            'features': plan.features or [],
            'isActive': plan.is_active,
            'trialDays': plan.trial_days,
        }

    def _subscription_to_dict(self, subscription: UserSubscription) -> Dict[str, Any]:
        return {
            'id': subscription.id,
            'userId': subscription.user_id,
            'planId': subscription.plan_id,
            'stripeSubscriptionId': subscription.stripe_subscription_id,
            'stripeCustomerId': subscription.stripe_customer_id,
            'status': subscription.status,
            'currentPeriodStart': subscription.current_period_start,
            'currentPeriodEnd': subscription.current_period_end,
            'trialStart': subscription.trial_start,
            'trialEnd': subscription.trial_end,
            'canceledAt': subscription.canceled_at,
            'cancelAtPeriodEnd': subscription.cancel_at_period_end,
            'createdAt': subscription.created_at,
        }

    def _optimization_to_dict(self, optimization: ProductOptimization) -> Dict[str, Any]:
        return {
            'id': optimization.id,
            'userId': optimization.user_id,
            'userStoreId': optimization.user_store_id,
            'shopifyProductId': optimization.shopify_product_id,
            'optimizationType': optimization.optimization_type,
            'originalValue': optimization.original_value,
            'optimizedValue': optimization.optimized_value,
            'creditsUsed': optimization.credits_used,
            'appliedAt': optimization.applied_at,
        }

    def _chat_session_to_dict(self, session: ChatSession) -> Dict[str, Any]:
        return {
            'id': session.id,
            'userId': session.user_id,
            'title': session.title,
            'isActive': session.is_active,
            'createdAt': session.created_at,
            'updatedAt': session.updated_at,
        }

    def _message_to_dict(self, message: ChatMessage) -> Dict[str, Any]:
        return {
            'id': message.id,
            'sessionId': message.session_id,
            'content': message.content,
            'isFromAssistant': message.is_from_assistant,
            'createdAt': message.created_at,
        }

    def _memory_to_dict(self, memory: ConversationMemory) -> Dict[str, Any]:
        return {
            'id': memory.id,
            'userId': memory.user_id,
            'sessionId': memory.session_id,
            'topic': memory.topic,
            'summary': memory.summary,
            'keyPoints': memory.key_points or [],
            'createdAt': memory.created_at,
        }
