class ProfileError(Exception):
    """Base class for profile, cart and checkout failures surfaced to callers."""


class ConversionError(ProfileError):
    """Guest to registered conversion could not be completed."""


class CheckoutError(ProfileError):
    """The checkout gateway did not confirm the order; the cart is untouched."""


class ProfileStoreError(ProfileError):
    """The remote profile store rejected or could not serve a request."""


class DocumentNotFoundError(ProfileStoreError):
    pass


class IdentityError(Exception):
    """Base class for identity provider failures."""


class AccountExistsError(IdentityError):
    pass


class InvalidCredentialsError(IdentityError):
    pass
