# Services module
#
# Quote workflow services. Each takes the caller explicitly and commits its
# own transaction; import the submodules directly.
