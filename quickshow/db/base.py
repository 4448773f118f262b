
from quickshow.db.session import Base
from quickshow.models.movie import Movie
from quickshow.models.show import Show
from quickshow.models.booking import Booking, BookingExpiry
from quickshow.models.notification import Notification
