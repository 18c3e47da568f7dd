# This file makes the 'utils' directory a Python sub-package
# within the 'post_classifier' service.
#
# It contains the loader that reads the keyword dictionary file
# into an immutable KeywordDictionary.
