import os

from cryptography.fernet import Fernet, InvalidToken


def get_master_key(key: str | None = None) -> bytes:
    key = key or os.getenv("MASTER_KEY")
    if not key:
        raise RuntimeError("MASTER_KEY env variable is not set")
    return key.encode()


def get_fernet(key: str | None = None) -> Fernet:
    return Fernet(get_master_key(key))


def encrypt_token(token: str, key: str | None = None) -> str:
    f = get_fernet(key)
    return f.encrypt(token.encode()).decode()


def decrypt_token(token_enc: str, key: str | None = None) -> str | None:
    f = get_fernet(key)
    try:
        return f.decrypt(token_enc.encode()).decode()
    except InvalidToken:
        # key rotated or file tampered with
        return None
