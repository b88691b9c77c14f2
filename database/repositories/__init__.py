# database repositories package
