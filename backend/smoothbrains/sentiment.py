"""
SmoothBrains Backend: Social Sentiment

Reddit (OAuth search API, or a site:reddit.com web search without
credentials), YouTube (Data API v3) and Twitter/X (site-restricted
web search + LLM summary), scored with a small word/emoji lexicon and merged
into one unified view. Uses httpx for the source APIs.
"""

import asyncio
import re
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from urllib.parse import quote, urlparse

import httpx

from smoothbrains import llm, prompts, search
from smoothbrains.config import generate_error_code, log, settings
from smoothbrains.models import TwitterSummary

USER_AGENT = "SmoothBrains/1.0"
REDDIT_SEARCH_LIMIT = 50
REDDIT_WEB_RESULTS = 25
YOUTUBE_MAX_RESULTS = 25
SPARSE_POSTS_THRESHOLD = 20
WEB_SEARCH_CONFIDENCE = 0.4

POSITIVE_WORDS = {
    "love", "excellent", "good", "nice", "wonderful", "best", "great", "awesome", "amazing",
    "fantastic", "perfect", "beautiful", "helpful", "useful", "valuable", "brilliant", "super",
    "outstanding", "impressive", "exceptional", "remarkable", "extraordinary", "delightful",
    "happy", "excited", "success", "win", "profitable", "growth", "improve", "better",
}

NEGATIVE_WORDS = {
    "bad", "terrible", "awful", "horrible", "poor", "worst", "hate", "dislike", "ugly",
    "useless", "worthless", "disappointing", "failure", "fail", "broken", "wrong", "mistake",
    "problem", "issue", "difficult", "hard", "complex", "frustrating", "annoying", "angry",
    "sad", "loss", "expensive", "overpriced", "scam", "waste", "crash", "bug",
}

EMOJI_SCORES = {
    "😍": 2, "❤️": 2, "💕": 2, "😊": 1, "😄": 1, "👍": 1, "🔥": 1, "🚀": 2,
    "😡": -2, "😠": -2, "💔": -2, "😔": -1, "😢": -1, "👎": -1, "💩": -2, "🤮": -2,
    "🤔": 0, "😐": 0, "🙄": -1,
}

THEME_STOP_WORDS = {
    "the", "is", "at", "which", "on", "and", "a", "an", "as", "are", "was", "were", "of", "to", "in",
    "for", "with", "it", "this", "that", "be", "have", "has", "had", "do", "does", "did", "will",
    "would", "can", "could", "should", "may", "might", "what", "your", "from", "about", "anyone",
}

SUBREDDIT_PATTERN = re.compile(r"/r/([^/]+)")

PAIN_KEYWORDS = [
    "problem", "issue", "difficult", "hard", "frustrating", "annoying", "cant", "can't",
    "unable", "broken", "need", "want", "wish",
]

# Weeks covered by each Reddit time window, for posts-per-week
WINDOW_WEEKS = {"hour": 1 / 168, "day": 1 / 7, "week": 1, "month": 4, "year": 52, "all": 52}

DEFAULT_TWITTER_VOLUME = 58
DEFAULT_TWITTER_SENTIMENT = 35
DEFAULT_TWITTER_INFLUENCER_INTEREST = 42


class SocialSourceError(Exception):
    """A social data source could not be reached or returned nothing usable."""

    pass


@dataclass
class RedditPost:
    id: str
    title: str
    selftext: str
    subreddit: str
    score: int
    num_comments: int
    created_utc: float
    permalink: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─────────────────────────────────────────────────────────────────────────────
# Lexicon analysis
# ─────────────────────────────────────────────────────────────────────────────


def analyze_sentiment(text: str) -> tuple[str, float]:
    """
    Lexicon score: +1 per positive word, -1 per negative word, '!' +0.5,
    '?' -0.2, 'very' x1.5, 'not' x-0.8, plus emoji scores.
    >= 2 is positive, <= -2 negative, anything between neutral.
    """
    text = text or ""
    words = re.split(r"\W+", text.lower())
    score = 0.0
    for word in words:
        if word in POSITIVE_WORDS:
            score += 1
        if word in NEGATIVE_WORDS:
            score -= 1

    if "!" in text:
        score += 0.5
    if "?" in text:
        score -= 0.2
    if "very" in words:
        score *= 1.5
    if "not" in words:
        score *= -0.8

    for emoji, emoji_score in EMOJI_SCORES.items():
        if emoji in text:
            score += emoji_score

    if score >= 2:
        return "positive", score
    if score <= -2:
        return "negative", score
    return "neutral", score


def sentiment_distribution(labels: list[str]) -> dict[str, int]:
    """Percent split of labels; neutral absorbs rounding so the three sum to 100."""
    if not labels:
        return {"positive": 0, "neutral": 0, "negative": 0}
    counts = Counter(labels)
    positive = round(counts["positive"] / len(labels) * 100)
    negative = round(counts["negative"] / len(labels) * 100)
    return {"positive": positive, "neutral": 100 - positive - negative, "negative": negative}


def extract_themes(posts: list[RedditPost]) -> list[str]:
    """Six most frequent title words longer than three characters."""
    freq: Counter = Counter()
    for post in posts:
        for word in re.split(r"\W+", post.title.lower()):
            if len(word) > 3 and word not in THEME_STOP_WORDS:
                freq[word] += 1
    return [word for word, _ in freq.most_common(6)]


def extract_pain_points(posts: list[RedditPost]) -> list[str]:
    """Up to six unique sentences that mention a pain keyword, one per post."""
    pain_points: list[str] = []
    for post in posts:
        text = f"{post.title} {post.selftext}".lower()
        keyword = next((k for k in PAIN_KEYWORDS if k in text), None)
        if keyword is None:
            continue
        for sentence in re.split(r"[.!?]", text):
            if keyword in sentence and 10 < len(sentence) < 100:
                pain_points.append(sentence.strip()[:80])
                break

    unique = list(dict.fromkeys(pain_points))
    return unique[:6]


# ─────────────────────────────────────────────────────────────────────────────
# Reddit
# ─────────────────────────────────────────────────────────────────────────────


async def _reddit_access_token(client: httpx.AsyncClient) -> str:
    if not settings.reddit_client_id or not settings.reddit_client_secret:
        raise SocialSourceError("Reddit credentials not configured")
    try:
        response = await client.post(
            "https://www.reddit.com/api/v1/access_token",
            auth=(settings.reddit_client_id, settings.reddit_client_secret),
            data={"grant_type": "client_credentials", "scope": "read"},
            headers={"User-Agent": USER_AGENT},
        )
        response.raise_for_status()
        token = response.json().get("access_token")
    except (httpx.HTTPError, ValueError) as e:
        raise SocialSourceError(f"Reddit authentication failed: {e}") from e
    if not token:
        raise SocialSourceError("Reddit authentication failed: no access token")
    return token


async def _fetch_reddit_posts(search_terms: str, time_window: str) -> list[RedditPost]:
    async with httpx.AsyncClient(timeout=15.0) as client:
        token = await _reddit_access_token(client)
        try:
            response = await client.get(
                "https://oauth.reddit.com/search",
                params={"q": search_terms, "limit": REDDIT_SEARCH_LIMIT, "sort": "relevance", "t": time_window},
                headers={"Authorization": f"Bearer {token}", "User-Agent": USER_AGENT},
            )
            response.raise_for_status()
            children = response.json()["data"]["children"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise SocialSourceError(f"Reddit API error: {e}") from e

    posts = []
    for child in children:
        data = child.get("data") or {}
        if not data or data.get("over_18") or data.get("removed") or data.get("removed_by_category"):
            continue
        posts.append(RedditPost(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            selftext=(data.get("selftext") or "")[:500],
            subreddit=data.get("subreddit") or "",
            score=int(data.get("score") or 0),
            num_comments=int(data.get("num_comments") or 0),
            created_utc=float(data.get("created_utc") or 0),
            permalink=data.get("permalink") or "",
        ))
    return posts


async def _search_reddit_posts(search_terms: str) -> list[RedditPost]:
    """Reddit threads found by web search, used when API credentials are missing. No votes or dates."""
    results = await search.search_reddit(search_terms, num_results=REDDIT_WEB_RESULTS)
    posts = []
    for result in results:
        parsed = urlparse(result.url)
        if not parsed.netloc.endswith("reddit.com"):
            continue
        subreddit = SUBREDDIT_PATTERN.search(parsed.path)
        posts.append(RedditPost(
            id="",
            title=result.title,
            selftext=result.snippet[:500],
            subreddit=subreddit.group(1) if subreddit else "",
            score=0,
            num_comments=0,
            created_utc=0,
            permalink=parsed.path,
        ))
    return posts


def _reddit_metrics(values: dict[str, float], confidence: float) -> list[dict]:
    return [
        {"name": "sentiment_positive", "value": values["positive"], "unit": "%",
         "explanation": "share of positive posts", "confidence": confidence},
        {"name": "sentiment_neutral", "value": values["neutral"], "unit": "%",
         "explanation": "share of neutral posts", "confidence": confidence},
        {"name": "sentiment_negative", "value": values["negative"], "unit": "%",
         "explanation": "share of negative posts", "confidence": confidence},
        {"name": "engagement_score", "value": values["engagement"], "unit": "/100",
         "explanation": "avg upvotes & posts/week", "confidence": confidence},
        {"name": "community_positivity_score", "value": values["cps"], "unit": "/100",
         "explanation": "0.8*sentiment_core+0.2*engagement", "confidence": confidence},
    ]


def community_scores(positive: int, negative: int, avg_upvotes: float, posts_per_week: float) -> tuple[int, int]:
    """(engagement, community positivity score), both 0-100."""
    engagement = round(100 * (0.6 * min(1, avg_upvotes / 50) + 0.4 * min(1, posts_per_week / 10)))
    sentiment_core = round(0.7 * positive + 0.3 * (100 - negative))
    cps = round(0.8 * sentiment_core + 0.2 * engagement)
    return engagement, cps


async def reddit_sentiment(
    idea: str | None,
    industry: str | None = None,
    geography: str | None = None,
    time_window: str | None = None,
) -> dict:
    """
    Reddit community sentiment. Never raises: failures return the neutral fallback.

    Without API credentials, threads come from a site:reddit.com web search
    instead, scored on title and snippet only.
    """
    search_terms = " ".join(p for p in (idea, industry, geography) if p)
    window = time_window or "month"
    filters = {"idea": idea, "industry": industry, "geography": geography, "timeWindow": time_window}
    use_api = bool(settings.reddit_client_id and settings.reddit_client_secret)

    try:
        if not search_terms:
            raise SocialSourceError("No search terms provided")
        if use_api:
            posts = await _fetch_reddit_posts(search_terms, window)
        else:
            posts = await _search_reddit_posts(search_terms)
            if not posts:
                raise SocialSourceError("Reddit credentials not configured and web search found no threads")
    except SocialSourceError as e:
        log("ERROR", "reddit sentiment failed", error=str(e), error_code=generate_error_code())
        return reddit_fallback(filters, search_terms, str(e))

    log("INFO", "reddit posts fetched", posts=len(posts), time_window=window,
        source="api" if use_api else "web_search")

    labelled = [(post, *analyze_sentiment(f"{post.title} {post.selftext}")) for post in posts]
    distribution = sentiment_distribution([label for _, label, _ in labelled])

    divisor = len(posts) or 1
    avg_upvotes = sum(p.score for p in posts) / divisor
    posts_per_week = divisor / WINDOW_WEEKS.get(window, 4)
    engagement, cps = community_scores(distribution["positive"], distribution["negative"], avg_upvotes, posts_per_week)
    confidence = 0.5 if len(posts) < SPARSE_POSTS_THRESHOLD else 0.7
    warnings = ["Sparse results; signals may be noisy"] if len(posts) < SPARSE_POSTS_THRESHOLD else []
    if not use_api:
        confidence = WEB_SEARCH_CONFIDENCE
        warnings.append("Reddit API not configured; threads found by web search, no engagement data")

    return {
        "updatedAt": _now_iso(),
        "filters": filters,
        "metrics": _reddit_metrics({**distribution, "engagement": engagement, "cps": cps}, confidence),
        "themes": extract_themes(posts),
        "pain_points": extract_pain_points(posts),
        "items": [
            {
                "title": post.title,
                "snippet": post.selftext,
                "url": f"https://reddit.com{post.permalink}",
                "published": (
                    datetime.fromtimestamp(post.created_utc, timezone.utc).isoformat() if post.created_utc else None
                ),
                "source": f"r/{post.subreddit}",
                "evidence": [label],
                "score": post.score,
                "num_comments": post.num_comments,
            }
            for post, label, _ in labelled[:10]
        ],
        "citations": [{
            "label": "Reddit Search API" if use_api else "Reddit Web Search",
            "url": f"https://reddit.com/search?q={quote(search_terms)}",
        }],
        "warnings": warnings,
        "totalPosts": len(posts),
    }


def reddit_fallback(filters: dict, search_terms: str, error: str) -> dict:
    """Deterministic neutral payload so the dashboard can still render."""
    return {
        "updatedAt": _now_iso(),
        "filters": filters,
        "metrics": _reddit_metrics(
            {"positive": 0, "neutral": 100, "negative": 0, "engagement": 0, "cps": 0}, 0.5
        ),
        "themes": [],
        "pain_points": [],
        "items": [],
        "citations": [{"label": "Reddit Search", "url": f"https://reddit.com/search?q={quote(search_terms)}"}],
        "warnings": [
            "Using fallback data due to Reddit API error. Results may be incomplete.",
            error,
        ],
        "totalPosts": 0,
    }


def reddit_distribution(result: dict) -> dict[str, int]:
    values = {m["name"]: m["value"] for m in result.get("metrics", [])}
    return {
        "positive": values.get("sentiment_positive", 0),
        "neutral": values.get("sentiment_neutral", 0),
        "negative": values.get("sentiment_negative", 0),
    }


# ─────────────────────────────────────────────────────────────────────────────
# YouTube
# ─────────────────────────────────────────────────────────────────────────────


async def youtube_sentiment(query: str, industry: str | None = None) -> dict:
    """
    YouTube Data API search + view statistics, titles/descriptions scored
    with the lexicon.

    Raises SocialSourceError.
    """
    if not settings.youtube_api_key:
        raise SocialSourceError("YouTube API key not configured")

    search_terms = " ".join(p for p in (query, industry) if p)
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.get(
                "https://www.googleapis.com/youtube/v3/search",
                params={
                    "part": "snippet",
                    "q": search_terms,
                    "type": "video",
                    "maxResults": YOUTUBE_MAX_RESULTS,
                    "order": "relevance",
                    "key": settings.youtube_api_key,
                },
            )
            response.raise_for_status()
            items = response.json().get("items", [])

            video_ids = [i["id"]["videoId"] for i in items if i.get("id", {}).get("videoId")]
            stats: dict[str, dict] = {}
            if video_ids:
                stats_response = await client.get(
                    "https://www.googleapis.com/youtube/v3/videos",
                    params={"part": "statistics", "id": ",".join(video_ids), "key": settings.youtube_api_key},
                )
                stats_response.raise_for_status()
                stats = {v["id"]: v.get("statistics", {}) for v in stats_response.json().get("items", [])}
    except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
        raise SocialSourceError(f"YouTube API error: {e}") from e

    if not video_ids:
        raise SocialSourceError("No YouTube videos found")

    videos = []
    for item in items:
        video_id = item.get("id", {}).get("videoId")
        if not video_id:
            continue
        snippet = item.get("snippet", {})
        stat = stats.get(video_id, {})
        label, _ = analyze_sentiment(f"{snippet.get('title', '')} {snippet.get('description', '')}")
        videos.append({
            "video_id": video_id,
            "title": snippet.get("title", ""),
            "channel": snippet.get("channelTitle", ""),
            "url": f"https://youtu.be/{video_id}",
            "published": snippet.get("publishedAt"),
            "views": int(stat.get("viewCount", 0) or 0),
            "likes": int(stat.get("likeCount", 0) or 0),
            "comments": int(stat.get("commentCount", 0) or 0),
            "sentiment": label,
        })

    total_views = sum(v["views"] for v in videos)
    interactions = sum(v["likes"] + v["comments"] for v in videos)
    engagement_rate = round(interactions / total_views * 100, 1) if total_views else 0
    distribution = sentiment_distribution([v["sentiment"] for v in videos])

    by_channel: dict[str, list[dict]] = defaultdict(list)
    for v in videos:
        by_channel[v["channel"]].append(v)
    top_channels = sorted(
        (
            {
                "channel": channel,
                "videos": len(vids),
                "avg_views": round(sum(v["views"] for v in vids) / len(vids)),
                "sentiment": Counter(v["sentiment"] for v in vids).most_common(1)[0][0],
            }
            for channel, vids in by_channel.items()
        ),
        key=lambda c: c["avg_views"],
        reverse=True,
    )[:3]

    ranked = sorted(videos, key=lambda v: v["views"], reverse=True)
    if len(videos) >= 15:
        confidence = "High"
    elif len(videos) >= 5:
        confidence = "Medium"
    else:
        confidence = "Low"

    return {
        "summary": (
            f'YouTube has {len(videos)} relevant videos for "{search_terms[:50]}" with '
            f"{total_views:,} total views and {engagement_rate}% average engagement."
        ),
        "metrics": {
            "total_views": total_views,
            "avg_engagement_rate": f"{engagement_rate}%",
            "overall_sentiment": distribution,
            "top_channels": top_channels,
        },
        "clusters": [
            {
                "cluster_id": "video_content",
                "title": "Video Content & Engagement",
                "insight": f"The top {min(3, len(ranked))} videos account for "
                           f"{sum(v['views'] for v in ranked[:3]):,} views.",
                "metrics": {
                    "avg_views": round(total_views / len(videos)),
                    "avg_comments": round(sum(v["comments"] for v in videos) / len(videos)),
                    "sentiment": distribution,
                },
                "quotes": [{"text": v["title"], "sentiment": v["sentiment"]} for v in ranked[:3]],
                "citations": [{"source": "youtube.com", "url": v["url"]} for v in ranked[:2]],
            }
        ],
        "videos": ranked[:10],
        "confidence": confidence,
        "updatedAt": _now_iso(),
    }


def youtube_unavailable(error: str) -> dict:
    return {
        "summary": "Unable to fetch YouTube data",
        "metrics": {
            "total_views": 0,
            "avg_engagement_rate": "0%",
            "overall_sentiment": {"positive": 0, "neutral": 0, "negative": 0},
            "top_channels": [],
        },
        "clusters": [],
        "videos": [],
        "confidence": "Low",
        "error": error,
    }


# ─────────────────────────────────────────────────────────────────────────────
# Twitter / X
# ─────────────────────────────────────────────────────────────────────────────


async def twitter_sentiment(q: str, lang: str = "en", since: str = "7d", session_id: str | None = None) -> dict:
    """
    Twitter/X buzz from x.com/twitter.com search results summarized by the LLM.

    Raises SocialSourceError, LLMError, LLMValidationError.
    """
    results = await search.search_social(q, ["x.com", "twitter.com"], num_results=10)
    if not results:
        raise SocialSourceError("No Twitter/X results found")

    messages = prompts.build_twitter_prompt(q, lang, since, [asdict(r) for r in results])
    summary = await llm.call_llm_structured(messages, TwitterSummary, session_id=session_id)

    fetched_at = _now_iso()
    sources = summary.sources or [r.url for r in results]
    query_tag = "#" + re.sub(r"\s+", "", q)
    return {
        "status": "ok",
        "raw": summary.model_dump(),
        "normalized": {
            "volume": summary.volume or DEFAULT_TWITTER_VOLUME,
            "sentiment": summary.sentiment or DEFAULT_TWITTER_SENTIMENT,
            "influencerInterest": summary.influencer_interest or DEFAULT_TWITTER_INFLUENCER_INTEREST,
            "trendingHashtags": summary.trending_hashtags or [query_tag, "#startup", "#innovation"],
        },
        "citations": [{"source": "Twitter/X", "url": url, "fetchedAtISO": fetched_at} for url in sources[:5]],
        "fetchedAtISO": fetched_at,
    }


def twitter_unavailable(reason: str) -> dict:
    return {
        "status": "unavailable",
        "reason": reason,
        "raw": None,
        "normalized": None,
        "citations": [],
        "fetchedAtISO": _now_iso(),
    }


# ─────────────────────────────────────────────────────────────────────────────
# Unified
# ─────────────────────────────────────────────────────────────────────────────


def _summary_tone(distribution: dict[str, int]) -> str:
    if distribution["positive"] > 60:
        return "predominantly positive"
    if distribution["positive"] > 40:
        return "moderately positive"
    if distribution["negative"] > 40:
        return "concerning"
    return "mixed"


async def unified_sentiment(idea: str, session_id: str | None = None) -> dict:
    """
    Reddit, Twitter/X and YouTube fetched concurrently and merged. One
    source failing never takes the others down.
    """
    reddit, twitter, youtube = await asyncio.gather(
        reddit_sentiment(idea, time_window="week"),
        twitter_sentiment(idea, session_id=session_id),
        youtube_sentiment(idea),
        return_exceptions=True,
    )
    for name, result in (("reddit", reddit), ("twitter", twitter), ("youtube", youtube)):
        if isinstance(result, Exception):
            log("WARN", "sentiment source unavailable", session_id=session_id, source=name, error=str(result))
    if isinstance(reddit, Exception):
        reddit = None
    if isinstance(twitter, Exception):
        twitter = None
    if isinstance(youtube, Exception):
        youtube = None

    clusters = []
    breakdown = {}
    drivers: list[str] = []
    concerns: list[str] = []
    total_mentions = 0

    if reddit and reddit.get("totalPosts", 0) > 0:
        dist = reddit_distribution(reddit)
        breakdown["reddit"] = dist
        total_mentions += reddit["totalPosts"]
        drivers.extend(reddit.get("themes", [])[:2])
        concerns.extend(reddit.get("pain_points", [])[:2])
        clusters.append({
            "theme": "Community Discussion & Feedback",
            "insight": f"{reddit['totalPosts']} Reddit discussions analyzed with {dist['positive']}% positive sentiment",
            "sentiment": dist,
            "quotes": [
                {"text": item["title"], "sentiment": item["evidence"][0], "source": "reddit"}
                for item in reddit["items"][:3]
            ],
            "citations": [
                {"source": item["source"], "url": item["url"], "title": item["title"]}
                for item in reddit["items"][:2]
            ],
        })

    tweets = twitter["raw"]["top_tweets"] if twitter else []
    if tweets:
        labels = [analyze_sentiment(t["text"])[0] for t in tweets]
        dist = sentiment_distribution(labels)
        hashtags = twitter["normalized"]["trendingHashtags"]
        breakdown["twitter"] = dist
        total_mentions += len(tweets)
        drivers.extend(hashtags[:2])
        clusters.append({
            "theme": "Social Media Buzz & Trends",
            "insight": f"{len(tweets)} tweets analyzed with {len(hashtags)} trending hashtags",
            "sentiment": dist,
            "quotes": [
                {"text": t["text"][:150], "sentiment": label, "source": "twitter"}
                for t, label in zip(tweets[:3], labels)
            ],
            "citations": [
                {"source": "Twitter", "url": t.get("url") or "#", "title": t.get("author") or "Tweet"}
                for t in tweets[:2]
            ],
        })

    videos = (youtube or {}).get("videos", [])
    if videos:
        dist = youtube["metrics"]["overall_sentiment"]
        breakdown["youtube"] = dist
        total_mentions += len(videos)
        concerns.extend(v["title"] for v in videos if v["sentiment"] == "negative")
        clusters.append({
            "theme": "Video Content & Engagement",
            "insight": f"{len(videos)} videos analyzed with {youtube['metrics']['total_views']:,} total views",
            "sentiment": dist,
            "quotes": [{"text": v["title"], "sentiment": v["sentiment"], "source": "youtube"} for v in videos[:3]],
            "citations": [{"source": "YouTube", "url": v["url"], "title": v["title"]} for v in videos[:2]],
        })

    weighted = [c["sentiment"] for c in clusters if sum(c["sentiment"].values()) > 0]
    if weighted:
        overall = {
            key: round(sum(d[key] for d in weighted) / len(weighted))
            for key in ("positive", "neutral", "negative")
        }
    else:
        overall = {"positive": 0, "neutral": 0, "negative": 0}

    if total_mentions > 0:
        focus = f" Key focus: {clusters[0]['theme'].lower()}." if clusters else ""
        summary = (
            f"Analyzed {total_mentions} mentions across {len(clusters)} platforms. "
            f"Sentiment is {_summary_tone(overall)}.{focus}"
        )
    else:
        summary = "Limited data available for this idea."

    confidence = min(0.95, 0.3 + len(clusters) * 0.15 + min(total_mentions, 200) / 400)
    delta = overall["positive"] - 50

    return {
        "sentiment": {
            "summary": summary,
            "metrics": {
                "overall_distribution": overall,
                "top_positive_drivers": drivers[:4],
                "top_negative_concerns": concerns[:4],
                "source_breakdown": breakdown,
                "total_mentions": total_mentions,
                "trend_delta": f"{'+' if delta > 0 else ''}{delta}% vs neutral",
            },
            "clusters": clusters,
            "confidence": round(confidence, 2),
            "updatedAt": _now_iso(),
        }
    }
