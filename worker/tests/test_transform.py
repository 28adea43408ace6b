from sourdough_finder.etl import transform


def test_extract_zip_prefers_last_match():
    assert transform.extract_zip("12345 Main St, Portland, OR 97214") == "97214"
    assert transform.extract_zip("1 Main St, Portland, OR 97214-1234") == "97214"
    assert transform.extract_zip("no zip here") is None
    assert transform.extract_zip(None) is None


def test_parse_categories_merges_fields():
    record = {"category": "Pizza restaurant", "subtypes": "Pizza restaurant, Italian restaurant", "type": ["Bar"]}
    assert transform.parse_categories(record) == {"pizza restaurant", "italian restaurant", "bar"}


def test_to_candidate_maps_outscraper_fields():
    record = {
        "name": " Ken's Artisan Pizza ",
        "full_address": "304 SE 28th Ave, Portland, OR 97214",
        "city": "Beaverton",
        "phone": "+1 503-517-9951",
        "site": "https://kensartisan.com",
        "rating": "4.7",
        "reviews": "1,204",
        "latitude": 45.52,
        "longitude": -122.63,
        "description": "Wood-fired pies",
        "about": {"Highlights": {"Naturally leavened crust": True, "Live music": False}},
        "subtypes": "Pizza restaurant",
    }

    candidate = transform.to_candidate(record, "Portland", "OR")

    assert candidate.name == "Ken's Artisan Pizza"
    assert candidate.city == "Portland"
    assert candidate.state == "OR"
    assert candidate.zip_code == "97214"
    assert candidate.website == "https://kensartisan.com"
    assert candidate.rating == 4.7
    assert candidate.review_count == 1204
    assert candidate.has_coordinates
    assert "Naturally leavened crust" in candidate.raw_description
    assert "Live music" not in candidate.raw_description
    assert candidate.categories == {"pizza restaurant"}


def test_to_candidate_without_name_returns_none():
    assert transform.to_candidate({"full_address": "Main St"}, "Portland", "OR") is None


def test_to_candidate_tolerates_missing_fields():
    candidate = transform.to_candidate({"name": "Pizza B", "rating": "n/a"}, "Austin", "TX")

    assert candidate.address == ""
    assert candidate.rating is None
    assert candidate.latitude is None
    assert candidate.has_coordinates is False
    assert candidate.categories == set()
