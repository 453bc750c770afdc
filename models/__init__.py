# Import models so that SQLAlchemy metadata includes them on app startup
from .user import User  # noqa: F401
from .vendor import Vendor  # noqa: F401
from .brand import Brand  # noqa: F401
from .product import Product  # noqa: F401
from .cart import Cart, CartItem  # noqa: F401
from .address import Address  # noqa: F401
from .promo import PromoCode  # noqa: F401
from .order import Order, OrderStatusHistory, JarDeposit  # noqa: F401
from .order_item import OrderItem  # noqa: F401
from .payment import Payment  # noqa: F401
from .payout import Payout  # noqa: F401
from .review import Review  # noqa: F401
from .subscription import Subscription, SubscriptionItem  # noqa: F401
from .tracker import TrackerSettings, TrackerLog  # noqa: F401
from .setting import SiteSetting  # noqa: F401
from .wishlist import WishlistItem  # noqa: F401
from .notification import Notification  # noqa: F401
