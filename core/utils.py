def get_current_business(user):
    """
    Return the Business owned by this user, or None.

    Views resolve the company here and pass it explicitly into services; nothing below
    the HTTP layer reads the request user.
    """
    if not user or not getattr(user, "is_authenticated", False):
        return None
    from .models import Business  # local import to avoid circular deps

    return Business.objects.filter(owner_user=user).order_by("id").first()
