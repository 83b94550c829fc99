class DataException(Exception):
    def __init__(self,message:str):
        super().__init__(message)

class CastingException(DataException):
    def __init__(self,data_name:str='',from_type:str='notype',to_type:str='notype',**kwargs):
        super().__init__('')
        self.data_name = data_name
        self.from_type = from_type
        self.to_type = to_type

    def __str__(self):
        return f"""
            Casting {self.data_name} from {self.from_type} to {self.to_type} failed!
        """

class MissingData(DataException):
    def __init__(self,missing_data_name:str='',data_names:str='none',location:str='nowhere',**kwargs):
        super().__init__('')
        self.missing_data_name = missing_data_name
        self.data_names = data_names
        self.location = location

    def __str__(self):
        return f"""
            Missing data {self.missing_data_name} in {self.location} ({self.data_names})!
        """

class InvalidDataShape(DataException):
    def __init__(self,data_name_shapes:dict={},message:str='',**kwargs):
        super().__init__(message)
        self.data_name_shapes = data_name_shapes
        self.message = message

    def __str__(self):
        return f"""
            Data {self.data_name_shapes} have incompatible shapes!
            {self.message}
        """

class InvalidDataRange(DataException):
    def __init__(self,data,rang:list,**kwargs):
        super().__init__('')
        self.rang = rang
        self.data = data
        self.data_name = kwargs.get('data_name','Data')

    def __str__(self):
        return f"""
            {self.data_name} {self.data} not in ({self.rang})!
        """

# ---

class FunctionFailed(Exception):
    def __init__(self,**kwargs):
        super().__init__('')
        self.function_name = kwargs.get('name','')
        self.function_keys = kwargs.get('keys',[])
        self.message = kwargs.get('message','')

    def __str__(self):
        return f"""
            Function {self.function_name} with arguments {self.function_keys} has failed!
            {self.message}
        """

class SISFailed(FunctionFailed):
    def __init__(self,keys:list=[],**kwargs):
        super().__init__(name = 'sis_table', keys = keys, **kwargs)

class MultiprocessorFailed(FunctionFailed):
    def __init__(self,keys:list=[],**kwargs):
        super().__init__(name = 'Multiprocessor', keys = keys, **kwargs)

# ---

class ConfigException(Exception):
    def __init__(self,message:str,**kwargs):
        super().__init__(message)

class InvalidConfigType(ConfigException):
    def __init__(self,message:str,**kwargs):
        super().__init__(message)
        self.message = message
        self.key_path = kwargs.get('key_path',[])
        self.data = kwargs.get('data','[data-not-found]')

    def __str__(self):
        return f"""
            Error in {'>'.join(list(map(str,self.key_path)))}
            {self.message}
            Data: {self.data}
        """

class MissingConfigKey(ConfigException):
    def __init__(self,key_path:list=[],**kwargs):
        super().__init__('')
        self.key_path = key_path

    def __str__(self):
        return f"""
            Missing key {'>'.join(list(map(str,self.key_path)))} in config
        """
