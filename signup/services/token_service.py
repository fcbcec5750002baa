import secrets


class TokenService:
    def __init__(self, nbytes: int = 32):
        if nbytes < 16:
            raise ValueError("Confirmation tokens need at least 16 bytes of entropy")
        self.nbytes = nbytes

    def generate_confirmation_token(self) -> str:
        """Opaque, URL-safe token; usable as a store key and query parameter as-is"""
        return secrets.token_urlsafe(self.nbytes)


def new_token_service(nbytes: int = 32) -> TokenService:
    return TokenService(nbytes)
