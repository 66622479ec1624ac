import json
import logging
import time
from typing import Optional, Dict, Any, List

import openai
from openai import OpenAI

from ..config import settings, SCORE_MAXIMA
from ..exceptions import AIServiceError
from ..models.schemas import StoreAnalysisResult, SuggestionCategory, Priority, StoreSize
from ..utils.helpers import clamp

logger = logging.getLogger(__name__)

ANALYST_SYSTEM_PROMPT = (
    "You are an expert e-commerce consultant and conversion optimization specialist. "
    "Analyze stores objectively and provide actionable insights."
)

DEFAULT_CATEGORY_SCORES = {
    "design": 12,
    "product": 16,
    "seo": 13,
    "trust": 9,
    "pricing": 7,
    "conversion": 6,
}

DEFAULT_STRENGTHS = ["Store is functional", "Platform is reliable"]
DEFAULT_WARNINGS = ["Could improve product descriptions", "Needs more trust signals"]
DEFAULT_CRITICAL = ["Missing contact information"]
DEFAULT_SUMMARY = "Store analysis completed successfully."

VALID_CATEGORIES = {c.value for c in SuggestionCategory}
VALID_PRIORITIES = {p.value for p in Priority}
VALID_STORE_SIZES = {s.value for s in StoreSize}

RECOMMENDATION_SPECS = {
    "seo": {
        "role": "an expert SEO specialist for e-commerce stores",
        "goal": "SEO and category optimization",
        "count": "4-6",
        "types": "meta-tags|keywords|categories|structure|content|schema",
        "focus": [
            "Meta titles and descriptions optimization",
            "Product category structure improvement",
            "Keyword optimization strategies",
            "URL structure improvements",
            "Schema markup implementation",
        ],
        "fallback_score": 10,
        "fallback": {
            "type": "meta-tags",
            "title": "Optimize Meta Titles and Descriptions",
            "description": "Improve search engine visibility with compelling meta titles and descriptions",
            "impact": "Higher click-through rates from search results",
            "priority": "high",
            "suggestions": {
                "current": "Generic or missing meta titles and descriptions",
                "recommended": "Create unique, keyword-rich meta titles (50-60 chars) and descriptions "
                               "(150-160 chars) for each page",
                "implementation": "Update theme templates and product pages with optimized meta tags",
            },
        },
    },
    "legal": {
        "role": "an expert e-commerce legal consultant",
        "goal": "legal page and compliance",
        "count": "3-5",
        "types": "privacy|terms|returns|shipping|cookies|gdpr",
        "focus": [
            "Privacy Policy compliance (GDPR, CCPA)",
            "Terms of Service",
            "Return and Refund Policy",
            "Shipping Policy",
            "Cookie Policy and consent",
        ],
        "fallback_score": 8,
        "fallback": {
            "type": "privacy",
            "title": "Create Comprehensive Privacy Policy",
            "description": "Implement a GDPR and CCPA compliant privacy policy",
            "impact": "Legal compliance and customer trust",
            "priority": "critical",
            "suggestions": {
                "current": "Missing or incomplete privacy policy",
                "recommended": "Create comprehensive privacy policy covering data collection, usage, and user rights",
                "implementation": "Use a legal template generator or consult a legal expert to create a compliant policy",
            },
        },
    },
    "conversion": {
        "role": "an expert conversion rate optimization (CRO) specialist",
        "goal": "conversion improvement",
        "count": "4-6",
        "types": "checkout|cta|urgency|social-proof|forms|cart",
        "focus": [
            "Call-to-action button optimization",
            "Checkout process simplification",
            "Urgency and scarcity tactics",
            "Cart abandonment reduction",
            "Mobile conversion improvements",
        ],
        "fallback_score": 6,
        "fallback": {
            "type": "cta",
            "title": "Optimize Call-to-Action Buttons",
            "description": "Improve button design and copy to increase click-through rates",
            "impact": "Higher conversion rates and more sales",
            "priority": "high",
            "suggestions": {
                "current": "Generic or weak call-to-action buttons",
                "recommended": "Use action-oriented text, contrasting colors, and strategic placement for CTAs",
                "implementation": "Update button text, use contrasting colors and place CTAs above the fold",
            },
        },
    },
    "trust": {
        "role": "an expert trust and reputation specialist for e-commerce",
        "goal": "trust building and review optimization",
        "count": "4-6",
        "types": "reviews|testimonials|badges|security|guarantees|contact",
        "focus": [
            "Customer review system implementation",
            "Trust badges and security certificates",
            "Money-back guarantees",
            "Contact information visibility",
            "About us page optimization",
        ],
        "fallback_score": 9,
        "fallback": {
            "type": "reviews",
            "title": "Implement Customer Review System",
            "description": "Add customer reviews and ratings to build trust and social proof",
            "impact": "Increased customer confidence and higher conversion rates",
            "priority": "high",
            "suggestions": {
                "current": "No customer reviews visible on product pages",
                "recommended": "Install a review app and request reviews with automated post-purchase emails",
                "implementation": "Add a review app to product pages and send review request emails after purchase",
            },
        },
    },
    "design": {
        "role": "an expert e-commerce UX and visual design specialist",
        "goal": "design and user experience",
        "count": "4-6",
        "types": "layout|navigation|imagery|branding|mobile|speed",
        "focus": [
            "Mobile responsiveness",
            "Page load speed",
            "Navigation clarity",
            "Product imagery quality",
            "Brand consistency",
        ],
        "fallback_score": 12,
        "fallback": {
            "type": "mobile",
            "title": "Improve Mobile Shopping Experience",
            "description": "Make product pages and checkout easy to use on small screens",
            "impact": "Lower bounce rate from mobile visitors",
            "priority": "high",
            "suggestions": {
                "current": "Layout is not tuned for mobile visitors",
                "recommended": "Use larger tap targets, a sticky add-to-cart button and compressed images",
                "implementation": "Adjust the theme's mobile breakpoints and enable image compression",
            },
        },
    },
}

RECOMMENDATION_MAXIMA = {
    "seo": 20,
    "legal": 15,
    "conversion": 10,
    "trust": 15,
    "design": 20,
}

OPTIMIZATION_INSTRUCTIONS = {
    "title": "Write an SEO-optimized product title of 50-70 characters that states what the product is "
             "and its key benefit.",
    "description": "Write a persuasive product description of 120-250 words in simple HTML "
                   "(<p>, <ul>, <li>) covering benefits, features and use cases.",
    "pricing": "Suggest a psychologically attractive retail price in USD based on the current price "
               "and product positioning. Return only the number with two decimals.",
    "keywords": "Suggest 8-12 search keywords shoppers would use to find this product, "
                "as a comma-separated list.",
}


def build_analysis_prompt(data: Dict[str, Any]) -> str:
    """
    Build the scoring prompt for one store

    Args:
        data: dict with store_content, store_type and optionally store_url,
            ebay_username and optimization_context

    Returns:
        str: prompt text
    """
    store_type = data.get("store_type", "shopify")
    lines = [
        f"Analyze this {store_type} store using the comprehensive scoring system.",
        "",
        "Store Information:",
        data.get("store_content", ""),
        "",
    ]
    if data.get("store_url"):
        lines.append(f"Store URL: {data['store_url']}")
    if data.get("ebay_username"):
        lines.append(f"eBay Username: {data['ebay_username']}")

    context = data.get("optimization_context")
    if context:
        lines.extend([
            "",
            "IMPORTANT OPTIMIZATION CONTEXT:",
            "- This store has been optimized with StoreScore AI",
            f"- {context.get('optimized_products_count', 0)} products have been optimized",
            f"- {context.get('total_optimizations', 0)} total optimizations applied",
            f"- Optimization types: {', '.join(context.get('optimization_types', []))}",
            "- When scoring products, give higher scores for optimized titles, descriptions, and pricing",
            "- Mention the AI optimizations in your analysis",
        ])

    lines.extend([
        "",
        "Return analysis in JSON format with:",
        json.dumps(_response_contract(), indent=2),
        "",
        "Scoring Guidelines:",
        "- Design & UX (0-20): Mobile responsive, page speed, navigation, branding",
        "- Product Analysis (0-25): Product count, image quality, descriptions, titles, trending",
        "- SEO & Listings (0-20): Meta tags, keywords, categories, URL structure",
        "- Trust Signals (0-15): Policies, contact info, SSL, social proof",
        "- Pricing & Competitiveness (0-10): Price alignment with market",
        "- Conversion Boosters (0-10): CTAs, reviews, promotions, support",
        "",
        f"Provide realistic assessments based on {store_type} standards and make suggestions with priority levels.",
    ])
    return "\n".join(lines)


def _response_contract() -> Dict[str, Any]:
    contract = {
        "overallScore": "number (0-100, sum of all category scores)",
        "strengths": ["What's working well - 2-3 items"],
        "warnings": ["What needs improvement - 2-3 items"],
        "critical": ["What's critical or missing - 1-2 items"],
    }
    for category, maximum in SCORE_MAXIMA.items():
        contract[f"{category}Score"] = f"number (0-{maximum})"
    contract.update({
        "designAnalysis": {"mobileResponsive": "boolean", "pageSpeed": "number (seconds)",
                           "navigationClarity": "boolean", "brandingConsistency": "boolean",
                           "score": "same as designScore"},
        "productAnalysis": {"productCount": "number", "highQualityImages": "boolean",
                            "detailedDescriptions": "number (percentage 0-100)", "structuredTitles": "boolean",
                            "trendingProducts": "boolean", "score": "same as productScore"},
        "seoAnalysis": {"metaTitlesPresent": "boolean", "keywordOptimization": "boolean",
                        "categoriesUsed": "boolean", "cleanUrls": "boolean", "score": "same as seoScore"},
        "trustAnalysis": {"returnPolicy": "boolean", "aboutPage": "boolean", "contactInfo": "boolean",
                          "sslSecurity": "boolean", "socialProof": "number (review count or rating)",
                          "score": "same as trustScore"},
        "pricingAnalysis": {"competitive": "boolean", "priceRange": "low|medium|high",
                            "valuePerception": "underpriced|fair|overpriced", "score": "same as pricingScore"},
        "conversionAnalysis": {"clearCtas": "boolean", "reviewsDisplayed": "boolean", "promotions": "boolean",
                               "supportOptions": "boolean", "score": "same as conversionScore"},
        "suggestions": [{
            "title": "Specific actionable title",
            "description": "Detailed explanation with specific steps",
            "impact": "Quantified impact like '+15% conversion potential'",
            "category": "|".join(SCORE_MAXIMA),
            "priority": "low|medium|high|critical",
        }],
        "summary": "2-3 sentence overview of the store's current state and potential",
        "storeRecap": {
            "mainCategories": [{"name": "Category name", "viralScore": "number (1-10)",
                                "demandScore": "number (1-10)", "description": "Market potential"}],
            "storeSize": "small|medium|large|enterprise",
            "estimatedProducts": "Descriptive count like '50-100 products'",
            "targetAudience": "Description of primary customers",
            "businessModel": "B2C|B2B|Marketplace|etc",
            "competitiveAdvantage": "Key differentiator or strength",
        },
    })
    return contract


def _default_analyses(store_type: str) -> Dict[str, Dict[str, Any]]:
    return {
        "design": {"mobileResponsive": True, "pageSpeed": 3.2, "navigationClarity": True,
                   "brandingConsistency": False},
        "product": {"productCount": 150 if store_type == "shopify" else 89, "highQualityImages": True,
                    "detailedDescriptions": 65, "structuredTitles": False, "trendingProducts": True},
        "seo": {"metaTitlesPresent": True, "keywordOptimization": False, "categoriesUsed": True,
                "cleanUrls": True},
        "trust": {"returnPolicy": False, "aboutPage": False, "contactInfo": True, "sslSecurity": True,
                  "socialProof": 4.2 if store_type == "ebay" else 3.8},
        "pricing": {"competitive": True, "priceRange": "medium", "valuePerception": "fair"},
        "conversion": {"clearCtas": True, "reviewsDisplayed": False, "promotions": False,
                       "supportOptions": True},
    }


def _string_list(value: Any, default: List[str]) -> List[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _normalize_suggestions(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []

    suggestions = []
    for item in value:
        if not isinstance(item, dict) or not item.get("title"):
            continue
        category = str(item.get("category", "")).lower()
        if category not in VALID_CATEGORIES:
            logger.warning(f"Dropping suggestion with unknown category: {category!r}")
            continue
        priority = str(item.get("priority", "")).lower()
        suggestions.append({
            "title": str(item["title"]),
            "description": str(item.get("description") or ""),
            "impact": str(item.get("impact") or ""),
            "category": category,
            "priority": priority if priority in VALID_PRIORITIES else Priority.MEDIUM.value,
        })
    return suggestions


def _normalize_recap(value: Any) -> Dict[str, Any]:
    recap = value if isinstance(value, dict) else {}
    categories = []
    main_categories = recap.get("mainCategories")
    for item in main_categories if isinstance(main_categories, list) else []:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        categories.append({
            "name": str(item["name"]),
            "viralScore": clamp(item.get("viralScore"), 1, 10, 5),
            "demandScore": clamp(item.get("demandScore"), 1, 10, 5),
            "description": str(item.get("description") or ""),
        })

    normalized = {"mainCategories": categories}
    store_size = str(recap.get("storeSize", "")).lower()
    if store_size in VALID_STORE_SIZES:
        normalized["storeSize"] = store_size
    for key in ("estimatedProducts", "targetAudience", "businessModel", "competitiveAdvantage"):
        if recap.get(key):
            normalized[key] = str(recap[key])
    return normalized


def normalize_analysis(raw: Any, store_type: str = "shopify") -> Dict[str, Any]:
    """
    Turn whatever the model returned into a well-formed analysis result.

    Category scores are clamped to their maxima (missing ones take the default),
    the overall score is recomputed as their sum, suggestions with an unknown
    category are dropped and unknown priorities become "medium".
    """
    raw = raw if isinstance(raw, dict) else {}

    result: Dict[str, Any] = {}
    for category, maximum in SCORE_MAXIMA.items():
        value = raw.get(f"{category}Score")
        default = DEFAULT_CATEGORY_SCORES[category]
        result[f"{category}Score"] = default if value is None else clamp(value, 0, maximum, default)

    result["overallScore"] = sum(result[f"{category}Score"] for category in SCORE_MAXIMA)
    result["strengths"] = _string_list(raw.get("strengths"), DEFAULT_STRENGTHS)
    result["warnings"] = _string_list(raw.get("warnings"), DEFAULT_WARNINGS)
    result["critical"] = _string_list(raw.get("critical"), DEFAULT_CRITICAL)

    defaults = _default_analyses(store_type)
    for category in SCORE_MAXIMA:
        key = f"{category}Analysis"
        block = raw.get(key)
        block = dict(block) if isinstance(block, dict) else dict(defaults[category])
        block["score"] = result[f"{category}Score"]
        result[key] = block

    result["suggestions"] = _normalize_suggestions(raw.get("suggestions"))
    summary = raw.get("summary")
    result["summary"] = str(summary).strip() if summary else DEFAULT_SUMMARY
    result["storeRecap"] = _normalize_recap(raw.get("storeRecap"))

    validated = StoreAnalysisResult.model_validate(result)
    return validated.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_json_body(content: Optional[str]) -> Dict[str, Any]:
    """Parse a model reply, treating anything but a JSON object as an empty one"""
    if not content:
        return {}
    try:
        body = json.loads(content)
    except json.JSONDecodeError as e:
        logger.warning(f"AI response was not valid JSON: {e}")
        return {}
    if not isinstance(body, dict):
        logger.warning(f"AI response was {type(body).__name__}, expected an object")
        return {}
    return body


def translate_openai_error(error: Exception) -> AIServiceError:
    if isinstance(error, openai.RateLimitError):
        if getattr(error, "code", None) == "insufficient_quota":
            return AIServiceError("AI service quota exceeded", status_code=503, error=error)
        return AIServiceError("AI service rate limit reached, please try again shortly", status_code=429, error=error)
    if isinstance(error, openai.APITimeoutError):
        return AIServiceError("AI service timed out", status_code=504, error=error)
    return AIServiceError(f"AI analysis failed: {error}", status_code=502, error=error)


class AIAnalyzer:
    """Thin wrapper around the chat-completions API for everything StoreScore asks the model"""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.LLM_MODEL

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise AIServiceError("AI service is not configured", status_code=503)
            self._client = OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.LLM_TIMEOUT)
        return self._client

    def complete(self, messages: List[Dict[str, str]], max_tokens: int, temperature: Optional[float] = None,
                 json_mode: bool = False) -> str:
        """Run one chat completion and return the message text"""
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise translate_openai_error(e)

        return response.choices[0].message.content or ""

    def analyze_store(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Score a store; raises AIServiceError when the API call fails"""
        store_type = data.get("store_type", "shopify")
        logger.info(f"Starting AI analysis for {store_type} store, content length {len(data.get('store_content', ''))}")

        content = self.complete(
            [
                {"role": "system", "content": ANALYST_SYSTEM_PROMPT},
                {"role": "user", "content": build_analysis_prompt(data)},
            ],
            max_tokens=settings.LLM_MAX_TOKENS,
            json_mode=True,
        )

        result = normalize_analysis(parse_json_body(content), store_type)
        logger.info(f"AI analysis finished with overall score {result['overallScore']}")
        return result

    def generate_category_recommendations(self, category: str, store_url: str, store_type: str) -> Dict[str, Any]:
        """Focused recommendations for one category, falling back to a canned suggestion on failure"""
        spec = RECOMMENDATION_SPECS[category]
        score_key = f"{category}Score"
        maximum = RECOMMENDATION_MAXIMA[category]
        timestamp = int(time.time() * 1000)

        prompt = (
            f"You are {spec['role']}. Generate specific {spec['goal']} recommendations "
            f"for this {store_type} store: {store_url}\n\n"
            f"Provide {spec['count']} specific recommendations in this JSON format:\n"
            + json.dumps({
                score_key: f"number (0-{maximum})",
                "suggestions": [{
                    "id": "unique-id",
                    "type": spec["types"],
                    "title": "Specific improvement title",
                    "description": "Detailed explanation",
                    "impact": "Expected impact",
                    "priority": "critical|high|medium|low",
                    "suggestions": {
                        "current": "Current state",
                        "recommended": "Specific recommended change",
                        "implementation": "How to implement this change",
                    },
                }],
            }, indent=2)
            + "\n\nFocus on:\n" + "\n".join(f"- {item}" for item in spec["focus"])
        )

        try:
            content = self.complete(
                [{"role": "user", "content": prompt}],
                max_tokens=1500,
                temperature=0.7,
                json_mode=True,
            )
            result = json.loads(content or '{"suggestions": []}')
            suggestions = result.get("suggestions")
            if not isinstance(suggestions, list):
                raise ValueError("suggestions missing from response")

            result["suggestions"] = [
                {**suggestion, "id": suggestion.get("id") or f"{category}-{timestamp}-{index}"}
                for index, suggestion in enumerate(suggestions)
                if isinstance(suggestion, dict)
            ]
            result[score_key] = clamp(result.get(score_key), 0, maximum, spec["fallback_score"])
            return result
        except Exception as e:
            logger.warning(f"{category} recommendations failed, using fallback: {e}")
            return {
                score_key: spec["fallback_score"],
                "suggestions": [{**spec["fallback"], "id": f"{category}-fallback-{timestamp}"}],
            }

    def generate_product_optimization(self, product: Dict[str, Any], optimization_type: str) -> str:
        """New value for one product field"""
        variants = product.get("variants") or []
        price = variants[0].get("price") if variants else None
        prompt = "\n".join([
            "You are an e-commerce copywriter optimizing a Shopify product listing.",
            f"Title: {product.get('title', '')}",
            f"Description: {(product.get('body_html') or '')[:1500]}",
            f"Product type: {product.get('product_type', '')}",
            f"Tags: {product.get('tags', '')}",
            f"Current price: {price or 'unknown'}",
            "",
            OPTIMIZATION_INSTRUCTIONS[optimization_type],
            'Respond in JSON: {"optimizedValue": "..."}',
        ])

        content = self.complete(
            [
                {"role": "system", "content": ANALYST_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=800,
            temperature=0.7,
            json_mode=True,
        )
        value = parse_json_body(content).get("optimizedValue")
        if not value or not str(value).strip():
            raise AIServiceError(f"AI returned no {optimization_type} optimization")
        return str(value).strip()

    def generate_ad_copy(self, product: Dict[str, Any], platform: str, style: str, count: int) -> List[Dict[str, Any]]:
        """Ad variations for a product"""
        prompt = "\n".join([
            f"Write {count} {style} ad variations for {platform} promoting this product.",
            f"Product: {product.get('title', '')}",
            f"Description: {product.get('description') or ''}",
            f"Price: {product.get('price') or 'not specified'}",
            f"Target audience: {product.get('target_audience') or 'general online shoppers'}",
            "",
            'Respond in JSON: {"ads": [{"headline": "...", "primaryText": "...", '
            '"callToAction": "...", "hashtags": ["..."]}]}',
        ])

        content = self.complete(
            [
                {"role": "system", "content": "You are a performance marketing copywriter."},
                {"role": "user", "content": prompt},
            ],
            max_tokens=1200,
            temperature=0.8,
            json_mode=True,
        )
        ads = parse_json_body(content).get("ads")
        if not isinstance(ads, list):
            ads = []

        cleaned = []
        for ad in ads[:count]:
            if not isinstance(ad, dict) or not ad.get("headline"):
                continue
            hashtags = ad.get("hashtags") if isinstance(ad.get("hashtags"), list) else []
            cleaned.append({
                "headline": str(ad["headline"]),
                "primaryText": str(ad.get("primaryText") or ""),
                "callToAction": str(ad.get("callToAction") or "Shop Now"),
                "hashtags": [str(tag) for tag in hashtags],
            })

        if not cleaned:
            raise AIServiceError("AI returned no ad copy")
        return cleaned
