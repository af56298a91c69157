from repair_directory.etl.store_text import QA_HEADER, REVIEWS_HEADER, format_store_for_ai, redact_store_text


def make_store():
    return {
        "place_id": "p1",
        "name": "Scoot Fix",
        "subtitle": "Scooter repair shop",
        "description": "Fixing e-scooters since 2015.",
        "categories": ["Scooter repair shop", "Bicycle repair shop"],
        "total_score": 4.8,
        "reviews_count": 3,
        "reviews": [
            {"publishedAtDate": "2024-01-01T00:00:00.000Z", "stars": 5, "text": "oldest"},
            {"publishedAtDate": "2024-03-01T00:00:00.000Z", "stars": 4, "text": "newest",
             "responseFromOwnerText": "Thanks!"},
            {"publishedAtDate": "2024-02-01T00:00:00.000Z", "stars": 3, "text": "middle"},
        ],
        "questions_and_answers": [
            {"question": "Do you fix Segways?", "askDate": "2023-05-01",
             "answers": [{"answer": "Yes", "answerDate": "2023-05-02", "answeredBy": {"name": "Owner"}}]},
            {"question": "Open Sunday?", "askDate": "2023-06-01", "answers": []},
        ],
    }


def test_format_store_for_ai_orders_reviews_newest_first_and_limits():
    formatted = format_store_for_ai(make_store(), max_reviews=2, max_qas=1)
    text = formatted.store_text

    assert formatted.place_id == "p1"
    assert formatted.reviews_count == 3
    assert "Name: Scoot Fix" in text
    assert "Business Type: Scooter repair shop" in text
    assert REVIEWS_HEADER in text
    assert "Overall Rating: 4.8/5 stars" in text
    assert "Showing 2 most recent reviews:" in text
    assert text.index('"newest"') < text.index('"middle"')
    assert '"oldest"' not in text
    assert "Owner's Response: \"Thanks!\"" in text
    assert QA_HEADER in text
    assert "Do you fix Segways?" in text
    assert "Answered by: Owner on 2023-05-02" in text
    assert "Open Sunday?" not in text


def test_format_store_for_ai_without_reviews_or_questions():
    formatted = format_store_for_ai({"place_id": "p2", "name": "Bare"})
    assert REVIEWS_HEADER not in formatted.store_text
    assert QA_HEADER not in formatted.store_text
    assert formatted.reviews_count == 0


def test_redact_store_text_keeps_only_first_review_and_question():
    text = format_store_for_ai(make_store()).store_text

    redacted = redact_store_text(text)

    assert "Name: Scoot Fix" in redacted
    assert '"newest"' in redacted
    assert '"middle"' not in redacted
    assert "[Additional reviews redacted for logging]" in redacted
    assert "Do you fix Segways?" in redacted
    assert "Open Sunday?" not in redacted


def test_format_store_for_ai_tolerates_loose_answer_shapes():
    store = {
        "place_id": "p3",
        "name": "Loose Data",
        "categories": ["Repair", 7],
        "questions_and_answers": [
            {"question": "Fix hoverboards?", "answers": [
                {"answer": "Yes", "answerDate": "2023-01-02", "answeredBy": "Owner"},
                "stray text",
                {"answer": "Sometimes", "answeredBy": None},
            ]},
            {"question": "Parking?", "answers": "none"},
        ],
    }

    text = format_store_for_ai(store).store_text

    assert "- 7" in text
    assert "Answered by: Owner on 2023-01-02" in text
    assert "Answered by: unknown on None" in text
    assert "stray text" not in text
    assert "(No answers provided yet)" in text
