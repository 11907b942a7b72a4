from assistant.parsing import parse_query_filter

# Max price phrasings
def test_under_sets_max_only():
    f = parse_query_filter("headphones under $300")
    assert f.max_price == 300.0
    assert f.min_price is None

def test_max_price_variants():
    assert parse_query_filter("anything below 150").max_price == 150.0
    assert parse_query_filter("Less Than $75 please").max_price == 75.0
    assert parse_query_filter("price < 40").max_price == 40.0

# Min price phrasings
def test_min_price_variants():
    assert parse_query_filter("laptops over $1000").min_price == 1000.0
    assert parse_query_filter("something ABOVE 200").min_price == 200.0
    assert parse_query_filter("more than $50").min_price == 50.0
    assert parse_query_filter("price > 10").min_price == 10.0

# Thousands separators and cents are part of the amount
def test_price_with_commas_and_cents():
    assert parse_query_filter("laptops over $1,000").min_price == 1000.0
    assert parse_query_filter("earbuds under $249.99").max_price == 249.99
    assert parse_query_filter("shoes under $100, any brand").max_price == 100.0

# First pattern in priority order wins, not the first in the text
def test_priority_order_wins():
    f = parse_query_filter("less than $500 but ideally under $300")
    assert f.max_price == 300.0

def test_both_bounds_no_ordering_check():
    f = parse_query_filter("over $500 and under $100")
    assert f.min_price == 500.0
    assert f.max_price == 100.0

# A bare number is not a bound
def test_no_false_positive_price():
    f = parse_query_filter("do you have the iphone 15")
    assert f.max_price is None
    assert f.min_price is None

# Ranges are a known gap: only the explicit single direction phrases count
def test_between_is_not_a_range():
    f = parse_query_filter("between $50 and $200")
    assert f.min_price is None
    assert f.max_price is None

# Category and keywords
def test_category_first_match():
    assert parse_query_filter("Any ELECTRONICS deals?").category == "electronics"
    assert parse_query_filter("footwear or clothing").category == "footwear"

def test_keywords_keep_all_matches():
    f = parse_query_filter("compare the Sony and the Samsung and AirPods")
    assert f.keywords == ("airpods", "samsung", "sony")

def test_empty_query_gives_empty_filter():
    assert parse_query_filter("what do you sell?").is_empty
    assert parse_query_filter("").is_empty
