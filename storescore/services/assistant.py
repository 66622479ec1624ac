import logging
import re
from datetime import datetime
from typing import Optional, Dict, Any, List

from ..config import SCORE_MAXIMA, CHAT_MAX_HISTORY
from ..exceptions import StoreScoreException
from ..utils.helpers import calculate_health_score, format_relative_time, get_weakest_areas, score_rating, time_ago
from .ai_analyzer import AIAnalyzer, parse_json_body
from .shopify_integration import ShopifyClient

logger = logging.getLogger(__name__)

ALEX_SYSTEM_PROMPT = """You are Alex, an AI-powered eCommerce Manager assistant.
Your mission is to help users grow their online stores through suggestions, education and analysis.

You must:
- Be proactive and guide the user based on their store data and actual product information
- Use the provided context (store scores, product issues, past conversations) to personalize responses
- When asked about products to improve, recommend specific products by name with reasons
- Teach concepts when no urgent optimization tasks exist
- Recall previous interactions for continuity
- Ask follow-up questions and provide action plans
- Link improvements to business outcomes

Personality: friendly but professional, strategic, patient, results-oriented, encouraging but realistic.
Keep responses concise but actionable."""

WELCOME_INSTRUCTIONS = """
Write a proactive and friendly welcome message that:
- References this specific context and store situation
- Suggests concrete next actions or improvements
- Uses a conversational, encouraging tone
- Stays under 150 words"""

INSIGHTS_PROMPT = (
    "Analyze this eCommerce conversation and extract: 1) Main topic (2-4 words), "
    "2) Brief summary (1 sentence), 3) Key points discussed. Return as JSON."
)

WELCOME_FALLBACK = (
    "Hey there! I'm Alex, your AI e-commerce manager. I'm here to help optimize your store "
    "and boost your sales. What would you like to work on today?"
)
REPLY_FALLBACK = "I'm having trouble processing that right now. Could you try rephrasing your question?"
DEFAULT_TOPIC = "General Discussion"
DEFAULT_SUMMARY = "Conversation about store optimization"

STALE_ANALYSIS_DAYS = 7
LOW_PERFORMER_LIMIT = 10
TAG_PATTERN = re.compile(r'<[^>]*>')

# Where to send the user for each weak area
AREA_RECOMMENDATIONS = {
    "seo": "seo",
    "trust": "trust",
    "design": "design",
    "conversion": "conversion",
    "products": "conversion",
    "pricing": "conversion",
}


def _product_issues(product: Dict[str, Any]) -> List[str]:
    issues = []
    title = product.get('title') or ''
    if title and len(title) < 30:
        issues.append('short title')

    description = TAG_PATTERN.sub('', product.get('body_html') or '')
    if len(description) < 100:
        issues.append('short description')

    if len(product.get('images') or []) < 2:
        issues.append('few images')

    if not product.get('tags'):
        issues.append('no tags')

    variants = product.get('variants') or []
    if variants:
        try:
            if float(variants[0].get('price') or 0) > 100:
                issues.append('high price')
        except (TypeError, ValueError):
            pass
        if any(v.get('inventory_quantity') is not None and v['inventory_quantity'] < 5 for v in variants):
            issues.append('low stock')
    return issues


def find_low_performing_products(products: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Products with at least two listing problems, first ten only

    A problem is a title under 30 chars, a description under 100 chars of text,
    fewer than two images, no tags, a price over 100, or a variant with less
    than five units in stock.
    """
    flagged = []
    for product in products:
        issues = _product_issues(product)
        if len(issues) >= 2:
            flagged.append({
                'id': product.get('id'),
                'title': product.get('title'),
                'issues': issues,
            })
    return flagged[:LOW_PERFORMER_LIMIT]


def load_store_product_data(shopify: ShopifyClient, store: Dict[str, Any]) -> Dict[str, Any]:
    """Products of a connected store with its low performers; empty when unavailable"""
    empty = {'products': [], 'productCount': 0, 'lowPerformingProducts': []}
    if not store.get('shopifyAccessToken') or not store.get('shopifyDomain'):
        return empty

    try:
        products = shopify.fetch_store_products(store['shopifyDomain'], store['shopifyAccessToken'])
    except StoreScoreException as e:
        logger.warning(f"Could not load products for store {store.get('id')}: {e.message}")
        return empty

    low_performers = find_low_performing_products(products)
    logger.info(f"Analyzed {len(products)} products, {len(low_performers)} need improvement")
    return {'products': products, 'productCount': len(products), 'lowPerformingProducts': low_performers}


def _analysis_for_store(store: Dict[str, Any], analyses: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for analysis in analyses:
        if analysis.get('userStoreId') == store['id']:
            return analysis
    for analysis in analyses:
        if store.get('storeUrl') and analysis.get('storeUrl') == store['storeUrl']:
            return analysis
    return None


def build_user_context(user: Dict[str, Any], stores: List[Dict[str, Any]], analyses: List[Dict[str, Any]],
                       memories: List[Dict[str, Any]], product_data: Optional[Dict[int, Dict[str, Any]]] = None,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Collect what the assistant should know about a user

    Args:
        user: the user dict
        stores: the user's stores
        analyses: the user's analyses, newest first
        memories: conversation memories, newest first
        product_data: optional ``load_store_product_data`` output per store id
        now: reference time

    Returns:
        dict: context consumed by ``build_context_prompt``
    """
    now = now or datetime.utcnow()
    product_data = product_data or {}

    context_stores = []
    for store in stores:
        products = product_data.get(store['id'], {})
        context_stores.append({
            'id': store['id'],
            'name': store['name'],
            'storeUrl': store.get('storeUrl'),
            'analysis': _analysis_for_store(store, analyses),
            'productCount': products.get('productCount', 0),
            'lowPerformingProducts': products.get('lowPerformingProducts', []),
        })

    hours_since_last = None
    if memories:
        hours_since_last = (now - memories[0]['createdAt']).total_seconds() / 3600

    return {
        'userId': user['id'],
        'firstName': user.get('firstName'),
        'stores': context_stores,
        'recentAnalyses': analyses,
        'pastConversations': [
            {'topic': m['topic'], 'summary': m['summary'], 'createdAt': m['createdAt']} for m in memories
        ],
        'dashboardVisitTime': now,
        'hoursSinceLastMessage': hours_since_last,
    }


def _describe_store(store: Dict[str, Any], now: datetime) -> List[str]:
    analysis = store['analysis']
    if not analysis:
        return [f'Store "{store["name"]}" has no analysis yet.']

    lines = [f'Store "{store["name"]}" scored {analysis["overallScore"]}/100.']
    breakdown = ", ".join(
        f"{category} {analysis.get(f'{category}Score', 0)}/{maximum}"
        for category, maximum in SCORE_MAXIMA.items()
    )
    lines.append(f"Score breakdown: {breakdown}.")

    weak_areas = get_weakest_areas(analysis)
    if weak_areas:
        lines.append(f"Weak areas flagged: {', '.join(weak_areas)}.")

    if store['productCount']:
        lines.append(f"Store has {store['productCount']} products.")
    low_performers = store['lowPerformingProducts']
    if low_performers:
        lines.append(f"{len(low_performers)} products need optimization:")
        for index, product in enumerate(low_performers[:5], start=1):
            lines.append(f'{index}. "{product["title"]}" - {", ".join(product["issues"])}')

    days_since = (now - analysis['createdAt']).days
    if days_since > STALE_ANALYSIS_DAYS:
        lines.append(f"Last full store analysis was {days_since} days ago - might need refresh.")
    return lines


def build_context_prompt(context: Dict[str, Any]) -> str:
    """Plain-text summary of a user context for the system prompt"""
    now = context['dashboardVisitTime']
    lines = [f"User opened the dashboard at {now.strftime('%Y-%m-%d %H:%M')} UTC."]
    if context.get('firstName'):
        lines.append(f"The user's name is {context['firstName']}.")

    stores = context['stores']
    if not stores:
        lines.append("User has no stores yet.")
    elif len(stores) == 1:
        lines.append("They have 1 store.")
        lines.extend(_describe_store(stores[0], now))
    else:
        lines.append(f"They have {len(stores)} stores.")
        for store in stores:
            lines.extend(_describe_store(store, now))

    conversations = context['pastConversations']
    if conversations:
        hours = context.get('hoursSinceLastMessage') or 0
        topic = conversations[0]['topic']
        if hours < 1:
            lines.append(f"Last conversation was less than an hour ago, about {topic}.")
        elif hours < 24:
            lines.append(f"Last conversation was {time_ago(int(hours), 'hour')}, about {topic}.")
        else:
            lines.append(f"Last conversation was {time_ago(int(hours // 24), 'day')}, about {topic}.")
        topics = ", ".join(c['topic'] for c in conversations[:3])
        lines.append(f"Previous topics discussed: {topics}.")
    else:
        lines.append("This is their first conversation with Alex.")

    return "\n".join(lines)


def build_store_insights(stores: List[Dict[str, Any]], analyses: List[Dict[str, Any]],
                         now: Optional[datetime] = None) -> Dict[str, Any]:
    """Health score, weakest areas and top issues per store, plus totals"""
    now = now or datetime.utcnow()
    store_insights = []
    for store in stores:
        analysis = _analysis_for_store(store, analyses)
        if not analysis:
            store_insights.append({
                'storeId': store['id'],
                'name': store['name'],
                'analyzed': False,
                'healthScore': None,
                'weakestAreas': [],
                'topIssues': [],
                'needsRefresh': True,
            })
            continue

        store_insights.append({
            'storeId': store['id'],
            'name': store['name'],
            'analyzed': True,
            'healthScore': calculate_health_score(analysis),
            'weakestAreas': get_weakest_areas(analysis),
            'ratings': {
                category: score_rating(analysis.get(f'{category}Score') or 0, maximum)
                for category, maximum in SCORE_MAXIMA.items()
            },
            'topIssues': ((analysis.get('critical') or []) + (analysis.get('warnings') or []))[:3],
            'lastAnalyzedAt': analysis['createdAt'],
            'lastAnalyzed': format_relative_time(analysis['createdAt'], now),
            'needsRefresh': (now - analysis['createdAt']).days > STALE_ANALYSIS_DAYS,
        })

    scored = [s['healthScore'] for s in store_insights if s['healthScore'] is not None]
    return {
        'stores': store_insights,
        'totalStores': len(stores),
        'analyzedStores': len(scored),
        'averageHealthScore': round(sum(scored) / len(scored)) if scored else None,
    }


def proactive_nudge(insights: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """The single most useful next step for the user, or None when nothing stands out"""
    stores = insights['stores']
    if not stores:
        return {
            'type': 'connect_store',
            'message': "Add your first store and I'll run a full analysis to find quick wins.",
            'action': 'add_store',
        }

    unanalyzed = [s for s in stores if not s['analyzed']]
    if unanalyzed:
        return {
            'type': 'analyze_store',
            'message': f'"{unanalyzed[0]["name"]}" hasn\'t been analyzed yet. Want me to score it?',
            'action': 'analyze',
            'storeId': unanalyzed[0]['storeId'],
        }

    stale = [s for s in stores if s['needsRefresh']]
    if stale:
        return {
            'type': 'refresh_analysis',
            'message': f'The analysis of "{stale[0]["name"]}" is over a week old. A fresh scan will show your progress.',
            'action': 'analyze',
            'storeId': stale[0]['storeId'],
        }

    weakest = min(stores, key=lambda s: s['healthScore'])
    if weakest['weakestAreas']:
        area = weakest['weakestAreas'][0]
        return {
            'type': 'improve_area',
            'message': f'{area.title()} is the weakest area of "{weakest["name"]}". I have specific fixes ready.',
            'action': 'recommendations',
            'category': AREA_RECOMMENDATIONS[area],
            'storeId': weakest['storeId'],
        }
    return None


class Assistant:
    """Alex, the store coaching chat assistant"""

    def __init__(self, ai: Optional[AIAnalyzer] = None):
        self.ai = ai or AIAnalyzer()

    def generate_welcome(self, context: Dict[str, Any]) -> str:
        try:
            content = self.ai.complete(
                [
                    {"role": "system", "content": ALEX_SYSTEM_PROMPT},
                    {"role": "user", "content": build_context_prompt(context) + "\n" + WELCOME_INSTRUCTIONS},
                ],
                max_tokens=300,
                temperature=0.7,
            )
            return content.strip() or WELCOME_FALLBACK
        except Exception as e:
            logger.warning(f"Welcome generation failed for user {context.get('userId')}, using fallback: {e}")
            return WELCOME_FALLBACK

    def generate_reply(self, message: str, context: Dict[str, Any], history: List[Dict[str, str]]) -> str:
        """
        Answer a chat message

        Args:
            message: the user's message
            context: output of ``build_user_context``
            history: earlier messages as ``{"role", "content"}``, oldest first;
                only the last ten are sent
        """
        system = f"{ALEX_SYSTEM_PROMPT}\n\nCurrent Context:\n{build_context_prompt(context)}"
        messages = [{"role": "system", "content": system}]
        messages.extend(history[-CHAT_MAX_HISTORY:])
        messages.append({"role": "user", "content": message})

        try:
            content = self.ai.complete(messages, max_tokens=400, temperature=0.8)
            return content.strip() or REPLY_FALLBACK
        except Exception as e:
            logger.warning(f"Chat reply failed for user {context.get('userId')}, using fallback: {e}")
            return REPLY_FALLBACK

    def extract_conversation_insights(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Topic, one-line summary and key points of a conversation"""
        conversation = "\n".join(
            f"{'Alex' if m['isFromAssistant'] else 'User'}: {m['content']}" for m in messages
        )
        try:
            content = self.ai.complete(
                [
                    {"role": "system", "content": INSIGHTS_PROMPT},
                    {"role": "user", "content": (
                        f"Conversation:\n{conversation}\n\n"
                        'Return format: {"topic": "string", "summary": "string", "keyPoints": ["string"]}'
                    )},
                ],
                max_tokens=300,
                json_mode=True,
            )
            result = parse_json_body(content)
            key_points = result.get('keyPoints')
            return {
                'topic': str(result.get('topic') or DEFAULT_TOPIC)[:255],
                'summary': str(result.get('summary') or DEFAULT_SUMMARY),
                'keyPoints': [str(p) for p in key_points] if isinstance(key_points, list) else [],
            }
        except Exception as e:
            logger.warning(f"Conversation insight extraction failed, using fallback: {e}")
            return {'topic': DEFAULT_TOPIC, 'summary': DEFAULT_SUMMARY, 'keyPoints': []}
