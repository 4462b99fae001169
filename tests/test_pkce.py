import re

from banklink.services.pkce import derive_code_challenge, generate_nonce, generate_pkce_pair


def test_challenge_matches_rfc7636_example() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

    assert derive_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


def test_generated_pair_is_consistent_and_url_safe() -> None:
    pair = generate_pkce_pair()

    assert len(pair.code_verifier) == 43
    assert re.fullmatch(r"[A-Za-z0-9_-]+", pair.code_verifier)
    assert pair.code_challenge == derive_code_challenge(pair.code_verifier)


def test_each_pair_and_nonce_is_unique() -> None:
    assert generate_pkce_pair().code_verifier != generate_pkce_pair().code_verifier
    assert generate_nonce() != generate_nonce()
