"""
IP address handling for requests arriving through a reverse proxy.

Behind a proxy, request.remote_addr is the proxy's address. The client
address is taken from the proxy headers instead, in this order:
CF-Connecting-IP, X-Real-IP, then the leftmost X-Forwarded-For entry.
"""

from flask import request


def get_real_ip():
    """
    Get the real client IP address from the request.

    Returns:
        str: The client's IP address, or None outside a request.
    """
    real_ip = request.headers.get('CF-Connecting-IP')
    if real_ip:
        return real_ip.strip()

    real_ip = request.headers.get('X-Real-IP')
    if real_ip:
        return real_ip.strip()

    # X-Forwarded-For can be: "client, proxy1, proxy2"
    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    return request.remote_addr


def get_request_info():
    """Return the client IP and user agent for audit and error records."""
    return {
        'ip_address': get_real_ip(),
        'user_agent': request.headers.get('User-Agent'),
    }
