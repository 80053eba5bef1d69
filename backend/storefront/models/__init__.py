from .auth import User, SessionToken
from .catalog import Category, Product
from .cart import Cart, CartItem
from .orders import Order, OrderItem, OrderSequence
from .newsletter import PendingSubscriber, NewsletterSubscriber
from .wishlist import Wishlist, WishlistItem
from .offers import Offer, OfferClaim
from .announcements import Announcement

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product',
    'Cart', 'CartItem',
    'Order', 'OrderItem', 'OrderSequence',
    'PendingSubscriber', 'NewsletterSubscriber',
    'Wishlist', 'WishlistItem',
    'Offer', 'OfferClaim',
    'Announcement',
]
