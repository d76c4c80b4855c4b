"""
Decentralized-storage URI helpers.
"""

IPFS_SCHEME = "ipfs://"
DEFAULT_GATEWAY = "https://ipfs.io/ipfs/"


def normalize_uri(uri: str, gateway: str = DEFAULT_GATEWAY) -> str:
    """
    Rewrite an ipfs:// URI to its HTTP gateway form.

    Any other scheme is returned unchanged.

    Args:
        uri: URI reported by a token contract or metadata document
        gateway: Gateway base URL, ending with the path the hash is appended to

    Returns:
        HTTP(S) URI
    """
    if not uri.startswith(IPFS_SCHEME):
        return uri

    ipfs_hash = uri[len(IPFS_SCHEME):]
    if not gateway.endswith("/"):
        gateway += "/"
    return f"{gateway}{ipfs_hash}"
