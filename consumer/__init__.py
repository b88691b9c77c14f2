# consumer package
