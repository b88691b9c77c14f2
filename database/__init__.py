# database package
