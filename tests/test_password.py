from accounts_api.auth.password import hash_password, validate_password_strength, verify_password
from accounts_api.auth.tokens import generate_one_time_token, hash_token, token_matches


def test_hash_is_argon2id_and_never_the_plaintext():
    password_hash = hash_password("Secret123!")
    assert password_hash != "Secret123!"
    assert password_hash.startswith("$argon2id$")


def test_same_password_hashes_differently():
    assert hash_password("Secret123!") != hash_password("Secret123!")


def test_verify_password():
    password_hash = hash_password("Secret123!")
    assert verify_password("Secret123!", password_hash)
    assert not verify_password("secret123!", password_hash)


def test_malformed_hash_does_not_verify():
    assert not verify_password("Secret123!", "not-a-hash")


def test_strong_password_has_no_issues():
    assert validate_password_strength("Secret123!") == []


def test_weak_password_issues():
    issues = validate_password_strength("short")
    assert "at least 8 characters" in issues
    assert "one uppercase letter" in issues
    assert "one digit" in issues
    assert "one special character" in issues
    assert "one lowercase letter" not in issues


def test_password_too_long():
    assert "at most 128 characters" in validate_password_strength("Aa1!" * 40)


def test_one_time_token_shape():
    raw_token, digest = generate_one_time_token()
    assert len(raw_token) == 64
    int(raw_token, 16)
    assert digest == hash_token(raw_token)
    assert digest != raw_token
    assert token_matches(raw_token, digest)
    assert not token_matches(raw_token + "0", digest)


def test_one_time_tokens_are_unique():
    assert generate_one_time_token()[0] != generate_one_time_token()[0]
