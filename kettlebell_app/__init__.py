from flask import Blueprint

kettlebell_bp = Blueprint(
    "kettlebell",
    __name__,
    template_folder="../templates/kettlebell",
)

from . import routes, api  # noqa
