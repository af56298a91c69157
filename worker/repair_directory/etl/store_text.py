"""Render store rows into the plain-text blob sent to the summarizer."""

from typing import Any, Dict, List

from repair_directory.models import FormattedStore

REVIEWS_HEADER = "=== CUSTOMER REVIEWS ==="
QA_HEADER = "=== FREQUENTLY ASKED QUESTIONS ==="


def _review_sort_key(review: Dict[str, Any]) -> str:
    # publishedAtDate is ISO-8601, so string order is chronological.
    return str(review.get("publishedAtDate") or review.get("publishAt") or "")


def _answered_by(value: Any) -> str:
    # Crawler output carries either {"name": ...} or a bare string.
    if isinstance(value, dict):
        return str(value.get("name") or "unknown")
    return str(value or "unknown")


def format_store_for_ai(store: Dict[str, Any], max_reviews: int = 10, max_qas: int = 5) -> FormattedStore:
    parts: List[str] = ["=== STORE INFORMATION ===", f"Name: {store.get('name')}"]

    if store.get("subtitle"):
        parts.append(f"Business Type: {store['subtitle']}")
    if store.get("description"):
        parts.append(f"\nOfficial Description:\n{store['description']}")

    categories = store.get("categories") or []
    if categories:
        parts.append("\nBusiness Categories:\n- " + "\n- ".join(str(category) for category in categories))

    reviews = [review for review in store.get("reviews") or [] if isinstance(review, dict)]
    if reviews:
        parts.append(f"\n{REVIEWS_HEADER}")
        parts.append(f"Total Reviews: {len(reviews)}")
        if store.get("total_score"):
            parts.append(f"Overall Rating: {store['total_score']}/5 stars")

        recent = sorted(reviews, key=_review_sort_key, reverse=True)[:max_reviews]
        parts.append(f"Showing {len(recent)} most recent reviews:")
        for review in recent:
            parts.append(f"\nReview from {review.get('publishedAtDate') or review.get('publishAt')}:")
            parts.append(f"Rating: {review.get('stars')}/5 stars")
            parts.append(f'Customer Feedback: "{review.get("text") or ""}"')
            if review.get("responseFromOwnerText"):
                parts.append(f'Owner\'s Response: "{review["responseFromOwnerText"]}"')

    questions = [qa for qa in store.get("questions_and_answers") or [] if isinstance(qa, dict)]
    if questions:
        parts.append(f"\n{QA_HEADER}")
        limited = questions[:max_qas]
        parts.append(f"Showing {len(limited)} questions:")
        for qa in limited:
            parts.append(f"\nQ: {qa.get('question')}")
            parts.append(f"Asked on: {qa.get('askDate')}")
            answers = [answer for answer in qa.get("answers") or [] if isinstance(answer, dict)]
            if not answers:
                parts.append("(No answers provided yet)")
            for answer in answers:
                answered_by = _answered_by(answer.get("answeredBy"))
                parts.append(f"A: {answer.get('answer')}")
                parts.append(f"Answered by: {answered_by} on {answer.get('answerDate')}")

    return FormattedStore(
        place_id=store["place_id"],
        name=store.get("name"),
        reviews_count=int(store.get("reviews_count") or 0),
        store_text="\n".join(parts),
    )


def redact_store_text(store_text: str) -> str:
    """Keep only the first review and first Q&A so store text is safe to log."""
    sections = [section for section in store_text.split("=== ") if section]
    redacted: List[str] = []
    for section in sections:
        lines = section.split("\n")
        if section.startswith("CUSTOMER REVIEWS"):
            stats = [line for line in lines if "Total Reviews:" in line or "Showing" in line]
            start = next((i for i, line in enumerate(lines) if "Review from" in line), None)
            body = "CUSTOMER REVIEWS ===\n" + "\n".join(stats)
            if start is not None:
                body += "\n\n" + "\n".join(lines[start:start + 4]) + "\n[Additional reviews redacted for logging]"
            redacted.append(body)
        elif section.startswith("FREQUENTLY ASKED QUESTIONS"):
            stats = [line for line in lines if "Showing" in line]
            start = next((i for i, line in enumerate(lines) if line.startswith("Q:")), None)
            body = "FREQUENTLY ASKED QUESTIONS ===\n" + "\n".join(stats)
            if start is not None:
                body += "\n\n" + "\n".join(lines[start:start + 4]) + "\n[Additional Q&As redacted for logging]"
            redacted.append(body)
        else:
            redacted.append("=== " + section)
    return "\n\n".join(redacted)
