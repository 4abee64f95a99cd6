from .db import DBBase, DBBaseClass, UTC, as_utc, get_db, init_models, time_now
