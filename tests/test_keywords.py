from issuescope.keywords import extract_technical_keywords, MAX_KEYWORDS

def test_extracts_known_terms_lowercased():
    keywords = extract_technical_keywords("My React app throws an Error when I await the Promise")
    assert keywords == ["react", "error", "await", "promise"]

def test_duplicates_are_removed():
    keywords = extract_technical_keywords("error ERROR Error")
    assert keywords == ["error"]

def test_code_spans_are_included():
    keywords = extract_technical_keywords("Calling `useEffect` twice breaks `x`")
    assert "useeffect" in keywords
    # span too short
    assert "x" not in keywords

def test_overlong_code_span_is_ignored():
    span = "a" * 60
    assert extract_technical_keywords(f"see `{span}`") == []

def test_capped_at_ten():
    text = "typescript javascript react node vue angular svelte error exception bug crash jest"
    keywords = extract_technical_keywords(text)
    assert len(keywords) == MAX_KEYWORDS
    assert keywords[0] == "typescript"

def test_plain_text_yields_nothing():
    assert extract_technical_keywords("Hello there, how are you today?") == []
