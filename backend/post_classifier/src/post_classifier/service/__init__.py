# This file makes the 'service' directory a Python sub-package
# within the 'post_classifier' service.
#
# It holds the classification pipeline (normalizer, matcher, scorer,
# classifier), the post stores and the batch classification service.
