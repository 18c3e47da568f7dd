# This file makes the 'models' directory a Python sub-package
# within the 'post_classifier' service.
#
# It contains the Pydantic models for the keyword dictionary,
# classification results and the API request/response schemas.
