from quickshow.models.movie import Movie
from quickshow.models.show import Show
from quickshow.models.booking import Booking, BookingExpiry, PaymentState
from quickshow.models.notification import Notification
